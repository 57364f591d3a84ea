import logging

from .instructions import (
    DecodedInstruction,
    OP_AUIPC,
    OP_BRANCH,
    OP_I_TYPE,
    OP_JAL,
    OP_JALR,
    OP_LOAD,
    OP_LUI,
    OP_R_TYPE,
    OP_STORE,
)
from .schemes import AluIntent, AluOpCode, ControlWord, InstructionShape, NOP_CONTROL

clean_out = logging.getLogger('riscv.clean')

VALID_LOAD_FUNCT3 = (0b000, 0b001, 0b010, 0b100, 0b101)
VALID_STORE_FUNCT3 = (0b000, 0b001, 0b010)
VALID_BRANCH_FUNCT3 = (0b000, 0b001, 0b100, 0b101, 0b110, 0b111)

# funct3 -> ALU operation, shared by register and immediate arithmetic
FUNCT3_ALU_TABLE = {
    0x0: AluOpCode.OP_ADD,
    0x1: AluOpCode.OP_SLL,
    0x2: AluOpCode.OP_SLT,
    0x3: AluOpCode.OP_SLTU,
    0x4: AluOpCode.OP_XOR,
    0x5: AluOpCode.OP_SRL,
    0x6: AluOpCode.OP_OR,
    0x7: AluOpCode.OP_AND,
}


def alu_ctrl_inst(intent: AluIntent, f3: int, f7: int) -> AluOpCode:
    """Resolve the ALU operation from the control intent and funct fields."""
    if intent == AluIntent.ADD_NEEDED:
        return AluOpCode.OP_ADD
    if intent == AluIntent.SUB_NEEDED:
        return AluOpCode.OP_SUB
    if intent == AluIntent.PC_RELATIVE:
        return AluOpCode.OP_PC_ADD

    f7_bit30 = (f7 >> 5) & 1 # Bit 30 of instruction is bit 5 of funct7
    alu_op = FUNCT3_ALU_TABLE[f3 & 0x7]

    if alu_op == AluOpCode.OP_ADD:
        # Only R-Type distinguishes SUB via bit 30
        if intent == AluIntent.DEPENDS_ON_REG_TYPE and f7_bit30:
            return AluOpCode.OP_SUB
    elif alu_op == AluOpCode.OP_SRL:
        if f7_bit30:
            return AluOpCode.OP_SRA
    return alu_op


def control_inst(decoded: DecodedInstruction) -> ControlWord:
    """Derive the control word for a decoded instruction.

    Anything outside the supported encodings maps to the all-disabled word.
    """
    opcode = decoded.opcode
    f3 = decoded.funct3
    f7 = decoded.funct7

    if opcode == OP_R_TYPE:
        return ControlWord(InstructionShape.ALU_REG,
                           alu_ctrl_inst(AluIntent.DEPENDS_ON_REG_TYPE, f3, f7))
    if opcode == OP_I_TYPE:
        return ControlWord(InstructionShape.ALU_IMM,
                           alu_ctrl_inst(AluIntent.DEPENDS_ON_IMM_TYPE, f3, f7))
    if opcode == OP_LOAD and f3 in VALID_LOAD_FUNCT3:
        return ControlWord(InstructionShape.LOAD, AluOpCode.OP_ADD)
    if opcode == OP_STORE and f3 in VALID_STORE_FUNCT3:
        return ControlWord(InstructionShape.STORE, AluOpCode.OP_ADD)
    if opcode == OP_BRANCH and f3 in VALID_BRANCH_FUNCT3:
        return ControlWord(InstructionShape.BRANCH, AluOpCode.OP_SUB)
    if opcode == OP_JAL:
        return ControlWord(InstructionShape.JAL, AluOpCode.OP_PC_ADD)
    if opcode == OP_JALR and f3 == 0:
        return ControlWord(InstructionShape.JALR, AluOpCode.OP_ADD)
    if opcode == OP_LUI:
        # rs1 decodes as x0, so ADD passes the immediate through
        return ControlWord(InstructionShape.LUI, AluOpCode.OP_ADD)
    if opcode == OP_AUIPC:
        return ControlWord(InstructionShape.AUIPC, AluOpCode.OP_PC_ADD)

    if decoded.word != 0:
        clean_out.debug(f"Unrecognised instruction 0x{decoded.word:08X}, treated as NOP")
    return NOP_CONTROL
