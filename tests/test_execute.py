import pytest

from risky_pipeline.execute import alu_inst, comparator, execute_stage, final_target_adder
from risky_pipeline.schemes import AluOpCode, ControlWord, ID_EX_Status, InstructionShape


# ---------------------------------------
# ALU
# ---------------------------------------
@pytest.mark.parametrize("op, a, b, expected", [
    (AluOpCode.OP_ADD, 0xFFFFFFFF, 1, 0),
    (AluOpCode.OP_SUB, 0, 1, 0xFFFFFFFF),
    (AluOpCode.OP_SLL, 1, 33, 2),
    (AluOpCode.OP_SRL, 0x80000000, 4, 0x08000000),
    (AluOpCode.OP_SRA, 0x80000000, 4, 0xF8000000),
    (AluOpCode.OP_SLT, 0xFFFFFFFF, 0, 1),
    (AluOpCode.OP_SLTU, 0xFFFFFFFF, 0, 0),
    (AluOpCode.OP_XOR, 0xF0F0, 0xFF00, 0x0FF0),
    (AluOpCode.OP_OR, 0xF0, 0x0F, 0xFF),
    (AluOpCode.OP_AND, 0xF0, 0x3C, 0x30),
])
def test_alu(op, a, b, expected):
    assert alu_inst(op, a, b) == expected


def test_alu_pc_add_ignores_first_operand():
    assert alu_inst(AluOpCode.OP_PC_ADD, 0x1234, 0x1000, pc=0x40) == 0x1040


@pytest.mark.parametrize("funct3, a, b, expected", [
    (0b000, 5, 5, True),
    (0b001, 5, 5, False),
    (0b100, 0xFFFFFFFF, 0, True),     # -1 < 0
    (0b101, 0xFFFFFFFF, 0, False),
    (0b110, 0xFFFFFFFF, 0, False),    # unsigned
    (0b111, 0xFFFFFFFF, 0, True),
    (0b010, 1, 1, False),             # not a branch condition
])
def test_comparator(funct3, a, b, expected):
    assert comparator(funct3, a, b) is expected


# ---------------------------------------
# Target adder
# ---------------------------------------
@pytest.mark.parametrize("base, offset", [(0x11, 0), (0x10, 3), (0x101, -2), (7, 7)])
def test_jalr_target_lsb_is_cleared(base, offset):
    target = final_target_adder(True, 0x400, base, offset)
    assert target & 1 == 0
    assert target == (base + offset) & 0xFFFFFFFE


def test_branch_target_is_pc_relative():
    assert final_target_adder(False, 0x100, 0x5555, -8) == 0xF8
    assert final_target_adder(False, 0x0, 0, -4) == 0xFFFFFFFC


# ---------------------------------------
# Whole execute stage
# ---------------------------------------
def test_execute_taken_branch():
    id_ex = ID_EX_Status(control_id=ControlWord(InstructionShape.BRANCH, AluOpCode.OP_SUB),
                         pc_id=0x20, imm_id=-16, funct3_id=0b001)
    result = execute_stage(id_ex, 1, 2)
    assert result.taken
    assert result.target == 0x10


def test_execute_jal_always_taken():
    id_ex = ID_EX_Status(control_id=ControlWord(InstructionShape.JAL, AluOpCode.OP_PC_ADD),
                         pc_id=0x8, imm_id=8, rd_id=1)
    result = execute_stage(id_ex, 0, 0)
    assert result.taken
    assert result.target == 0x10


def test_execute_immediate_operand_and_store_data():
    id_ex = ID_EX_Status(control_id=ControlWord(InstructionShape.STORE, AluOpCode.OP_ADD),
                         imm_id=-4, rs2_id=5)
    result = execute_stage(id_ex, 0x100, 0xABCD)
    assert result.alu_result == 0xFC
    assert result.store_data == 0xABCD
    assert not result.taken
