import logging

import pytest

from risky_pipeline.executor import TraceLogger, execute_program, perform_step

SUM_LOOP = """
    addi x1, x0, 5
    addi x2, x0, 0
loop:
    add x2, x2, x1
    addi x1, x1, -1
    bne x1, x0, loop
    ecall
"""

MEMORY_PROGRAM = """
    addi x1, x0, 64
    addi x2, x0, -5
    sw x2, 0(x1)
    lw x3, 0(x1)
    lbu x4, 0(x1)
    lb x5, 1(x1)
    lh x6, 2(x1)
    lhu x7, 0(x1)
    ecall
"""


def test_runs_until_halt(model, load_asm):
    load_asm(SUM_LOOP)
    result = execute_program(model, max_steps=200)
    assert result.halted
    assert result.status.register_file[2] == 15
    assert result.status.register_file[1] == 0
    assert result.status.mem_wb_status.instruction_mem == 0x00000073
    assert model.stats.flushes == 4


def test_every_older_instruction_has_committed_at_halt(model, load_asm):
    load_asm(MEMORY_PROGRAM)
    result = execute_program(model)
    assert result.halted
    assert result.steps == 12
    assert result.status.register_file[3:8] == (0xFFFFFFFB, 0xFB, 0xFFFFFFFF, 0xFFFFFFFF, 0xFFFB)
    assert model.stats.retired == 8
    assert model.stats.stalls == 0


def test_step_budget(model, load_asm):
    load_asm(SUM_LOOP)
    result = execute_program(model, max_steps=3)
    assert not result.halted
    assert result.steps == 3
    assert model.cycle_count == 3


def test_negative_budget_rejected(model):
    with pytest.raises(ValueError):
        execute_program(model, max_steps=-1)


def test_perform_step_logs_snapshot(model, load_asm, caplog):
    load_asm("addi x1, x0, 1")
    with caplog.at_level(logging.INFO, logger='riscv.clean'):
        status, mem = perform_step(model, TraceLogger())
    assert status.cycle == 1
    assert not mem.occurred
    assert ">> IF/ID STAGE STATUS" in caplog.text


def test_perform_step_reuses_trace(model, load_asm, caplog):
    load_asm("addi x1, x0, 1")
    trace = TraceLogger()
    with caplog.at_level(logging.INFO, logger='riscv.clean'):
        perform_step(model, trace)
        status, _ = perform_step(model, trace)
    assert trace.last_register_file == status.register_file
    # Only the first step dumps the whole register file
    assert caplog.text.count("x31: 0x00000000") == 1
    assert "No changes in Register File." in caplog.text


def test_register_diffs():
    trace = TraceLogger()
    first = tuple([0] * 32)
    trace.last_register_file = first
    second = (0, 7) + tuple([0] * 30)
    assert trace.list_only_diffs(second) == "x01: 0x00000000 -> 0x00000007"
    trace.last_register_file = second
    assert trace.list_only_diffs(second) == "No changes in Register File."
