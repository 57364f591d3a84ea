from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .schemes import extract_bits, sign_extend, to_signed

# --- OPCODES (Bits 6:0) ---
OP_R_TYPE   = 0b0110011  # Arithmetic Register-Register
OP_I_TYPE   = 0b0010011  # Arithmetic Immediate
OP_LOAD     = 0b0000011  # Load instructions
OP_STORE    = 0b0100011  # Store instructions
OP_BRANCH   = 0b1100011  # Conditional branches
OP_JALR     = 0b1100111  # Jump and Link Register
OP_JAL      = 0b1101111  # Jump and Link
OP_LUI      = 0b0110111  # Load Upper Immediate
OP_AUIPC    = 0b0010111  # Add Upper Immediate to PC
OP_SYSTEM   = 0b1110011  # ECALL / Environment calls

ECALL_WORD = 0x00000073
NOP_WORD = 0x00000013  # addi x0, x0, 0

I_FORMAT_OPCODES = (OP_I_TYPE, OP_LOAD, OP_JALR)
U_FORMAT_OPCODES = (OP_LUI, OP_AUIPC)
SHIFT_IMM_FUNCT3 = (0b001, 0b101)


@dataclass(frozen=True)
class DecodedInstruction:
    """Fields of one instruction word. Unused fields are always 0."""
    word: int = 0
    opcode: int = 0
    rd: int = 0
    rs1: int = 0
    rs2: int = 0
    funct3: int = 0
    funct7: int = 0
    shamt: int = 0
    imm: int = 0


def imm_gen(opcode: int, word: int) -> int:
    """Return the sign-extended immediate of `word` for its format, or 0."""
    # I-Type: Arithmetic, Loads, JALR
    if opcode in I_FORMAT_OPCODES:
        return sign_extend(extract_bits(word, 20, 12), 12)

    # S-Type: Stores
    if opcode == OP_STORE:
        imm_11_5 = extract_bits(word, 25, 7)
        imm_4_0  = extract_bits(word, 7, 5)
        return sign_extend((imm_11_5 << 5) | imm_4_0, 12)

    # B-Type: Branches
    if opcode == OP_BRANCH:
        imm_12   = extract_bits(word, 31, 1)
        imm_11   = extract_bits(word, 7, 1)
        imm_10_5 = extract_bits(word, 25, 6)
        imm_4_1  = extract_bits(word, 8, 4)
        raw_imm = (imm_12 << 12) | (imm_11 << 11) | (imm_10_5 << 5) | (imm_4_1 << 1)
        return sign_extend(raw_imm, 13)

    # U-Type: LUI, AUIPC
    if opcode in U_FORMAT_OPCODES:
        return to_signed(extract_bits(word, 12, 20) << 12)

    # J-Type: JAL
    if opcode == OP_JAL:
        imm_20    = extract_bits(word, 31, 1)
        imm_19_12 = extract_bits(word, 12, 8)
        imm_11    = extract_bits(word, 20, 1)
        imm_10_1  = extract_bits(word, 21, 10)
        raw_imm = (imm_20 << 20) | (imm_19_12 << 12) | (imm_11 << 11) | (imm_10_1 << 1)
        return sign_extend(raw_imm, 21)

    return 0


def decode(word: int) -> DecodedInstruction:
    """Split an instruction word into its fields by format.

    Fields the format does not define are left at 0 so that hazard and
    forwarding comparisons never match on stray bits.
    """
    opcode = extract_bits(word, 0, 7)
    rd     = extract_bits(word, 7, 5)
    funct3 = extract_bits(word, 12, 3)
    rs1    = extract_bits(word, 15, 5)
    rs2    = extract_bits(word, 20, 5)
    funct7 = extract_bits(word, 25, 7)
    imm    = imm_gen(opcode, word)

    if opcode == OP_R_TYPE:
        return DecodedInstruction(word, opcode, rd=rd, rs1=rs1, rs2=rs2, funct3=funct3, funct7=funct7)

    if opcode == OP_I_TYPE:
        # Only shifts carry funct7/shamt inside the immediate field
        if funct3 in SHIFT_IMM_FUNCT3:
            return DecodedInstruction(word, opcode, rd=rd, rs1=rs1, funct3=funct3,
                                      funct7=funct7, shamt=rs2, imm=imm)
        return DecodedInstruction(word, opcode, rd=rd, rs1=rs1, funct3=funct3, imm=imm)

    if opcode in (OP_LOAD, OP_JALR):
        return DecodedInstruction(word, opcode, rd=rd, rs1=rs1, funct3=funct3, imm=imm)

    if opcode in (OP_STORE, OP_BRANCH):
        return DecodedInstruction(word, opcode, rs1=rs1, rs2=rs2, funct3=funct3, imm=imm)

    if opcode in U_FORMAT_OPCODES or opcode == OP_JAL:
        return DecodedInstruction(word, opcode, rd=rd, imm=imm)

    return DecodedInstruction(word, opcode)


class InstructionFactory:
    # Map Opcode -> Format letter
    FORMAT_MAP: Dict[int, str] = {
        OP_R_TYPE: "R",
        OP_I_TYPE: "I",
        OP_LOAD:   "I",
        OP_STORE:  "S",
        OP_BRANCH: "B",
        OP_JALR:   "I",
        OP_JAL:    "J",
        OP_LUI:    "U",
        OP_AUIPC:  "U",
        OP_SYSTEM: "SYS",
    }

    # MNEMONIC_MAP: (opcode, funct3, funct7) -> mnemonic
    MNEMONIC_MAP: Dict[Tuple[int, Optional[int], Optional[int]], str] = {
        # --- R-Type ---
        (OP_R_TYPE, 0b000, 0b0000000): "add",
        (OP_R_TYPE, 0b000, 0b0100000): "sub",
        (OP_R_TYPE, 0b001, 0b0000000): "sll",
        (OP_R_TYPE, 0b010, 0b0000000): "slt",
        (OP_R_TYPE, 0b011, 0b0000000): "sltu",
        (OP_R_TYPE, 0b100, 0b0000000): "xor",
        (OP_R_TYPE, 0b101, 0b0000000): "srl",
        (OP_R_TYPE, 0b101, 0b0100000): "sra",
        (OP_R_TYPE, 0b110, 0b0000000): "or",
        (OP_R_TYPE, 0b111, 0b0000000): "and",

        # --- I-Type Arithmetic ---
        (OP_I_TYPE, 0b000, None):      "addi",
        (OP_I_TYPE, 0b010, None):      "slti",
        (OP_I_TYPE, 0b011, None):      "sltiu",
        (OP_I_TYPE, 0b100, None):      "xori",
        (OP_I_TYPE, 0b110, None):      "ori",
        (OP_I_TYPE, 0b111, None):      "andi",
        # Special case: Shifts use funct7 to distinguish logic vs arithmetic
        (OP_I_TYPE, 0b001, 0b0000000): "slli",
        (OP_I_TYPE, 0b101, 0b0000000): "srli",
        (OP_I_TYPE, 0b101, 0b0100000): "srai",

        # --- I-Type Loads & JALR ---
        (OP_LOAD,   0b000, None): "lb",
        (OP_LOAD,   0b001, None): "lh",
        (OP_LOAD,   0b010, None): "lw",
        (OP_LOAD,   0b100, None): "lbu",
        (OP_LOAD,   0b101, None): "lhu",
        (OP_JALR,   0b000, None): "jalr",

        # --- S-Type ---
        (OP_STORE,  0b000, None): "sb",
        (OP_STORE,  0b001, None): "sh",
        (OP_STORE,  0b010, None): "sw",

        # --- B-Type ---
        (OP_BRANCH, 0b000, None): "beq",
        (OP_BRANCH, 0b001, None): "bne",
        (OP_BRANCH, 0b100, None): "blt",
        (OP_BRANCH, 0b101, None): "bge",
        (OP_BRANCH, 0b110, None): "bltu",
        (OP_BRANCH, 0b111, None): "bgeu",

        # --- U-Type & J-Type ---
        (OP_LUI,    None,  None): "lui",
        (OP_AUIPC,  None,  None): "auipc",
        (OP_JAL,    None,  None): "jal",

        # --- System ---
        (OP_SYSTEM, 0b000, 0b0000000): "ecall",
    }

    @classmethod
    def mnemonic(cls, word: int) -> str:
        opcode = word & 0b1111111
        f3 = extract_bits(word, 12, 3)
        f7 = extract_bits(word, 25, 7)
        for key in [(opcode, f3, f7), (opcode, f3, None), (opcode, None, None)]:
            if key in cls.MNEMONIC_MAP:
                return cls.MNEMONIC_MAP[key]
        return "unknown"

    @classmethod
    def disassemble(cls, word: int) -> str:
        """Render `word` as assembly text, e.g. ``addi    x5, x0, 15``."""
        mnemonic = cls.mnemonic(word)
        if mnemonic == "unknown":
            return f"unknown (raw: {hex(word)})"

        d = decode(word)
        fmt = cls.FORMAT_MAP[d.opcode]

        if fmt == "R":
            return f"{mnemonic:7} x{d.rd}, x{d.rs1}, x{d.rs2}"
        if fmt == "I":
            # Shifts (slli, srli, srai) use only the lower 5 bits of the immediate
            if d.opcode == OP_I_TYPE and d.funct3 in SHIFT_IMM_FUNCT3:
                return f"{mnemonic:7} x{d.rd}, x{d.rs1}, {d.shamt}"
            if d.opcode == OP_LOAD:
                return f"{mnemonic:7} x{d.rd}, {d.imm}(x{d.rs1})"
            return f"{mnemonic:7} x{d.rd}, x{d.rs1}, {d.imm}"
        if fmt == "S":
            return f"{mnemonic:7} x{d.rs2}, {d.imm}(x{d.rs1})"
        if fmt == "B":
            return f"{mnemonic:7} x{d.rs1}, x{d.rs2}, {d.imm}"
        if fmt == "U":
            return f"{mnemonic:7} x{d.rd}, {hex((d.imm >> 12) & 0xFFFFF)}"
        if fmt == "J":
            return f"{mnemonic:7} x{d.rd}, {d.imm}"
        return mnemonic
