import pytest

from risky_pipeline.control import alu_ctrl_inst, control_inst
from risky_pipeline.instructions import decode
from risky_pipeline.schemes import (
    AluIntent,
    AluOpCode,
    ControlWord,
    InstructionShape,
    NOP_CONTROL,
    RD_Source,
)


def control_of(word):
    return control_inst(decode(word))


# ---------------------------------------
# ALU control
# ---------------------------------------
def test_bit30_selects_sub_only_for_register_type():
    assert alu_ctrl_inst(AluIntent.DEPENDS_ON_REG_TYPE, 0b000, 0x20) == AluOpCode.OP_SUB
    assert alu_ctrl_inst(AluIntent.DEPENDS_ON_IMM_TYPE, 0b000, 0x20) == AluOpCode.OP_ADD


def test_bit30_selects_arithmetic_shift():
    assert alu_ctrl_inst(AluIntent.DEPENDS_ON_REG_TYPE, 0b101, 0x20) == AluOpCode.OP_SRA
    assert alu_ctrl_inst(AluIntent.DEPENDS_ON_IMM_TYPE, 0b101, 0x20) == AluOpCode.OP_SRA
    assert alu_ctrl_inst(AluIntent.DEPENDS_ON_IMM_TYPE, 0b101, 0x00) == AluOpCode.OP_SRL


def test_fixed_intents():
    assert alu_ctrl_inst(AluIntent.ADD_NEEDED, 0b111, 0x20) == AluOpCode.OP_ADD
    assert alu_ctrl_inst(AluIntent.SUB_NEEDED, 0b000, 0) == AluOpCode.OP_SUB
    assert alu_ctrl_inst(AluIntent.PC_RELATIVE, 0b000, 0) == AluOpCode.OP_PC_ADD


# ---------------------------------------
# Control decoder
# ---------------------------------------
@pytest.mark.parametrize("word, shape, alu_op", [
    (0x002081B3, InstructionShape.ALU_REG, AluOpCode.OP_ADD),   # add x3, x1, x2
    (0x40208233, InstructionShape.ALU_REG, AluOpCode.OP_SUB),   # sub x4, x1, x2
    (0x00F00293, InstructionShape.ALU_IMM, AluOpCode.OP_ADD),   # addi x5, x0, 15
    (0x4030D093, InstructionShape.ALU_IMM, AluOpCode.OP_SRA),   # srai x1, x1, 3
    (0x0001A283, InstructionShape.LOAD, AluOpCode.OP_ADD),      # lw x5, 0(x3)
    (0x00512423, InstructionShape.STORE, AluOpCode.OP_ADD),     # sw x5, 8(x2)
    (0x00638463, InstructionShape.BRANCH, AluOpCode.OP_SUB),    # beq x7, x6, 8
    (0x0080006F, InstructionShape.JAL, AluOpCode.OP_PC_ADD),    # jal x0, 8
    (0x00008067, InstructionShape.JALR, AluOpCode.OP_ADD),      # jalr x0, 0(x1)
    (0x123452B7, InstructionShape.LUI, AluOpCode.OP_ADD),       # lui x5, 0x12345
    (0x00001297, InstructionShape.AUIPC, AluOpCode.OP_PC_ADD),  # auipc x5, 1
])
def test_control_shapes(word, shape, alu_op):
    assert control_of(word) == ControlWord(shape, alu_op)


def test_load_signals():
    control = control_of(0x0001A283)
    assert control.reg_write_en
    assert control.mem_read_en
    assert not control.mem_write_en
    assert control.use_immediate
    assert control.rd_src == RD_Source.MEMORY_DATA


def test_store_and_branch_do_not_write_registers():
    assert not control_of(0x00512423).reg_write_en
    assert control_of(0x00512423).mem_write_en
    branch = control_of(0x00638463)
    assert not branch.reg_write_en
    assert branch.is_branch
    assert not branch.use_immediate


def test_jumps_link():
    assert control_of(0x0080006F).rd_src == RD_Source.PC_PLUS_4
    assert control_of(0x00008067).rd_src == RD_Source.PC_PLUS_4


@pytest.mark.parametrize("word", [
    0x00000000,  # all zero
    0xFFFFFFFF,  # opcode 0x7F
    0x00000073,  # ecall
    0x0001B283,  # load with funct3 0b011
    0x00513423,  # store with funct3 0b011
    0x00632463,  # branch with funct3 0b010
    0x00009067,  # jalr with funct3 0b001
])
def test_unsupported_encodings_are_nops(word):
    control = control_of(word)
    assert control == NOP_CONTROL
    assert not control.reg_write_en
    assert not control.mem_read_en
    assert not control.mem_write_en
    assert not control.is_control_flow
