import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .cpu_model import CPUModel
from .instructions import ECALL_WORD
from .schemes import AtomicMemTransaction, NUM_REGISTERS, PipelineStatus

clean_out = logging.getLogger('riscv.clean')
raw_out = logging.getLogger('riscv.raw')

DEFAULT_MAX_STEPS = 10_000


@dataclass(frozen=True)
class ExecutionResult:
    steps: int
    halted: bool
    status: PipelineStatus


class TraceLogger:
    """Formats pipeline snapshots for the riscv loggers."""

    def __init__(self):
        self.last_register_file: Optional[Tuple[int, ...]] = None

    def list_only_diffs(self, current_rf: Tuple[int, ...]) -> str:
        """Compares current register file to last logged one and lists only differences."""
        if self.last_register_file is None:
            return "\n".join(f"x{i}: 0x{value:08X}" for i, value in enumerate(current_rf))

        output = []
        for i in range(NUM_REGISTERS):
            old_val = self.last_register_file[i]
            new_val = current_rf[i]
            if old_val != new_val:
                output.append(f"x{i:02}: 0x{old_val:08X} -> 0x{new_val:08X}")

        if not output:
            return "No changes in Register File."

        return "\n".join(output)

    def log_formatted(self, status: PipelineStatus, mem_obj: AtomicMemTransaction, final: bool = False):
        """Logs the human-readable string representation of the objects."""
        sep = "=" * 60
        clean_out.info("\n".join([sep, f"CYCLE: {status.cycle} | PC: 0x{status.program_counter:08X}", sep]))

        clean_out.info("\n".join(["\n>> HAZARD STATUS", str(status.hazard_status)]))

        if final:
            clean_out.info("\n".join(["\n>> FINAL REGISTER FILE", *status.register_lines()]))
        else:
            clean_out.info("\n".join(["\n>> REGISTER FILE CHANGES",
                                      self.list_only_diffs(status.register_file)]))
        self.last_register_file = status.register_file

        clean_out.info("\n".join(["\n>> IF/ID STAGE STATUS", str(status.if_id_status)]))
        clean_out.info("\n".join(["\n>> ID/EX STAGE STATUS", str(status.id_ex_status)]))
        clean_out.info("\n".join(["\n>> EX/MEM STAGE", str(status.ex_mem_status)]))
        clean_out.info("\n".join(["\n>> MEM/WB STAGE STATUS", str(status.mem_wb_status)]))
        clean_out.info("\n".join(["\n>> MEMORY UPDATE STATUS", str(mem_obj)]))

        clean_out.info(sep + "\n\n")


def perform_step(model: CPUModel, trace: TraceLogger) -> Tuple[PipelineStatus, AtomicMemTransaction]:
    """Advance the model by one step and log what happened.

    `trace` carries the previous register file between calls, so reuse one
    logger per run to get register diffs.
    """
    status = model.step()
    mem = model.last_transaction
    raw_out.debug(f"{model.stage_pcs()}")
    trace.log_formatted(status, mem)
    return status, mem


def execute_program(model: CPUModel, max_steps: int = DEFAULT_MAX_STEPS,
                    halt_word: Optional[int] = ECALL_WORD) -> ExecutionResult:
    """Step the model until `halt_word` reaches MEM/WB or `max_steps` is spent.

    Passing ``halt_word=None`` runs for exactly `max_steps` steps.
    """
    if max_steps < 0:
        raise ValueError(f"max_steps must be non-negative, got {max_steps}")

    trace = TraceLogger()
    clean_out.info(f"Started execution at 0x{model.pc:08X} (budget: {max_steps} steps).")
    status = model.snapshot()
    steps = 0
    halted = False
    while steps < max_steps:
        status, _ = perform_step(model, trace)
        steps += 1
        if halt_word is not None and status.mem_wb_status.instruction_mem == halt_word:
            halted = True
            break

    if halted:
        clean_out.info(f"⚠️ Program has ended after {steps} steps.")
    else:
        clean_out.warning(f"Step budget of {max_steps} spent without reaching the halt instruction.")
    trace.log_formatted(status, model.last_transaction, final=True)

    stats = model.stats
    clean_out.info(f"Cycles: {stats.cycles} | Retired: {stats.retired} | Stalls: {stats.stalls} | "
                   f"Flushes: {stats.flushes} | CPI: {stats.cpi:.2f}")
    return ExecutionResult(steps=steps, halted=halted, status=status)
