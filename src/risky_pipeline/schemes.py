from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, NamedTuple, Tuple
import struct
from enum import Enum

WORD_SIZE_BYTES = 4 # 32 bits
MASK_32 = 0xFFFFFFFF
NUM_REGISTERS = 32


def extract_bits(word: int, shift: int, width: int) -> int:
    """Return `width` bits from `word`, starting at `shift`."""
    if width <= 0 or width > 32:
        raise ValueError("width must be between 1 and 32")
    mask = (1 << width) - 1
    return (word >> shift) & mask


def sign_extend(value: int, bits: int) -> int:
    """Interpret the low `bits` of `value` as a two's complement number."""
    value &= (1 << bits) - 1
    return value - (1 << bits) if value & (1 << (bits - 1)) else value


def to_signed(value: int) -> int:
    return sign_extend(value, 32)


class RSn_Source(Enum):
    REG_FILE_AT_ID = 0
    RD_DATA_AT_MEM = 1
    RD_DATA_AT_WB = 2

    def __str__(self):
        if self == RSn_Source.REG_FILE_AT_ID:
            return "Reg File @ ID out"
        elif self == RSn_Source.RD_DATA_AT_MEM:
            return "Rd Data @ EX/MEM"
        elif self == RSn_Source.RD_DATA_AT_WB:
            return "Rd Data @ MEM/WB"
        else:
            return "UNKNOWN"


class Alu_Src_Optn(Enum):
    REG2_AT_ID = 0
    IMM_AT_ID = 1

    def __str__(self):
        if self == Alu_Src_Optn.REG2_AT_ID:
            return "Reg2 @ ID"
        elif self == Alu_Src_Optn.IMM_AT_ID:
            return "Imm @ ID"
        else:
            return "UNKNOWN"


class AluIntent(Enum):
    ADD_NEEDED = 0
    SUB_NEEDED = 1
    DEPENDS_ON_REG_TYPE = 2
    DEPENDS_ON_IMM_TYPE = 3
    PC_RELATIVE = 4

    def __str__(self):
        mapping = {
            AluIntent.ADD_NEEDED: "Add Needed",
            AluIntent.SUB_NEEDED: "Sub Needed",
            AluIntent.DEPENDS_ON_REG_TYPE: "Depends on Reg Type",
            AluIntent.DEPENDS_ON_IMM_TYPE: "Depends on Imm Type",
            AluIntent.PC_RELATIVE: "PC Relative Add",
        }
        return mapping.get(self, "UNKNOWN")


class AluOpCode(Enum):
    OP_ADD = 0x0
    OP_SLL = 0x1
    OP_SLT = 0x2
    OP_SLTU = 0x3
    OP_XOR = 0x4
    OP_SRL = 0x5
    OP_OR = 0x6
    OP_AND = 0x7
    OP_SUB = 0x8
    OP_PC_ADD = 0x9
    OP_SRA = 0xD

    def __str__(self):
        return self.name[3:]


class RD_Source(Enum):
    NONE = 0
    ALU_RESULT = 1
    MEMORY_DATA = 2
    PC_PLUS_4 = 3

    def __str__(self):
        if self == RD_Source.NONE:
            return "No Writeback"
        elif self == RD_Source.ALU_RESULT:
            return "RD has Execution Data"
        elif self == RD_Source.MEMORY_DATA:
            return "RD has Memory Data"
        elif self == RD_Source.PC_PLUS_4:
            return "RD has Link Address"
        else:
            return "UNKNOWN"


class MemoryWriteMask(Enum):
    # No activity
    NONE       = 0x0  # 0000

    # Byte Writes
    BYTE_0     = 0x1  # 0001
    BYTE_1     = 0x2  # 0010
    BYTE_2     = 0x4  # 0100
    BYTE_3     = 0x8  # 1000

    # Halfword Writes
    HALF_LOWER = 0x3  # 0011 (Bytes 0 and 1)
    HALF_UPPER = 0xC  # 1100 (Bytes 2 and 3)

    # Word Write
    WORD       = 0xF  # 1111 (All bytes)

    def __str__(self):
        mapping = {
            MemoryWriteMask.NONE:       "No Write",
            MemoryWriteMask.BYTE_0:     "Byte 0 Write (lsb)",
            MemoryWriteMask.BYTE_1:     "Byte 1 Write",
            MemoryWriteMask.BYTE_2:     "Byte 2 Write",
            MemoryWriteMask.BYTE_3:     "Byte 3 Write (msb)",
            MemoryWriteMask.HALF_LOWER: "Lower Halfword Write",
            MemoryWriteMask.HALF_UPPER: "Upper Halfword Write",
            MemoryWriteMask.WORD:       "Word Write"
        }
        return mapping.get(self, f"INVALID MASK ({bin(self.value)})")


class InstructionShape(Enum):
    """Every instruction class the pipeline knows how to carry."""
    NOP = 0
    ALU_REG = 1
    ALU_IMM = 2
    LOAD = 3
    STORE = 4
    BRANCH = 5
    JAL = 6
    JALR = 7
    LUI = 8
    AUIPC = 9

    def __str__(self):
        return self.name


class ShapeSignals(NamedTuple):
    rd_src: RD_Source
    alu_src_optn: Alu_Src_Optn
    reg_write_en: bool
    mem_read_en: bool
    mem_write_en: bool
    is_control_flow: bool


_REG, _IMM = Alu_Src_Optn.REG2_AT_ID, Alu_Src_Optn.IMM_AT_ID

SHAPE_SIGNALS = {
    #                                    rd_src                  alu_src reg_wr mem_rd mem_wr flow
    InstructionShape.NOP:     ShapeSignals(RD_Source.NONE,        _REG, False, False, False, False),
    InstructionShape.ALU_REG: ShapeSignals(RD_Source.ALU_RESULT,  _REG, True,  False, False, False),
    InstructionShape.ALU_IMM: ShapeSignals(RD_Source.ALU_RESULT,  _IMM, True,  False, False, False),
    InstructionShape.LOAD:    ShapeSignals(RD_Source.MEMORY_DATA, _IMM, True,  True,  False, False),
    InstructionShape.STORE:   ShapeSignals(RD_Source.NONE,        _IMM, False, False, True,  False),
    InstructionShape.BRANCH:  ShapeSignals(RD_Source.NONE,        _REG, False, False, False, True),
    InstructionShape.JAL:     ShapeSignals(RD_Source.PC_PLUS_4,   _IMM, True,  False, False, True),
    InstructionShape.JALR:    ShapeSignals(RD_Source.PC_PLUS_4,   _IMM, True,  False, False, True),
    InstructionShape.LUI:     ShapeSignals(RD_Source.ALU_RESULT,  _IMM, True,  False, False, False),
    InstructionShape.AUIPC:   ShapeSignals(RD_Source.ALU_RESULT,  _IMM, True,  False, False, False),
}


@dataclass(frozen=True)
class ControlWord:
    """Control signals of one instruction, derived entirely from its shape.

    The default instance is the all-disabled NOP used for bubbles and for
    anything the control decoder does not recognise.
    """
    shape: InstructionShape = InstructionShape.NOP
    alu_op: AluOpCode = AluOpCode.OP_ADD

    @property
    def signals(self) -> ShapeSignals:
        return SHAPE_SIGNALS[self.shape]

    @property
    def rd_src(self) -> RD_Source:
        return self.signals.rd_src

    @property
    def alu_src_optn(self) -> Alu_Src_Optn:
        return self.signals.alu_src_optn

    @property
    def use_immediate(self) -> bool:
        return self.signals.alu_src_optn == Alu_Src_Optn.IMM_AT_ID

    @property
    def reg_write_en(self) -> bool:
        return self.signals.reg_write_en

    @property
    def mem_read_en(self) -> bool:
        return self.signals.mem_read_en

    @property
    def mem_write_en(self) -> bool:
        return self.signals.mem_write_en

    @property
    def is_control_flow(self) -> bool:
        return self.signals.is_control_flow

    @property
    def is_branch(self) -> bool:
        return self.shape == InstructionShape.BRANCH

    @property
    def is_jal(self) -> bool:
        return self.shape == InstructionShape.JAL

    @property
    def is_jalr(self) -> bool:
        return self.shape == InstructionShape.JALR

    def __str__(self):
        return (f"{self.shape} (ALU {self.alu_op}, {self.alu_src_optn}, {self.rd_src}, "
                f"reg_write: {int(self.reg_write_en)}, mem_read: {int(self.mem_read_en)}, "
                f"mem_write: {int(self.mem_write_en)})")


NOP_CONTROL = ControlWord()


# Hazard status for the whole system
@dataclass(frozen=True)
class HazardStatus:
    pc_write_en: bool = True
    if_id_write_en: bool = True
    control_hazard: bool = False
    load_use_hazard: bool = False
    rs1_data_source: RSn_Source = RSn_Source.REG_FILE_AT_ID
    rs2_data_source: RSn_Source = RSn_Source.REG_FILE_AT_ID

    def __str__(self):
        return (f"PC Write Enable: {'YES' if self.pc_write_en else 'NO'}\n"
                f"IF/ID Write Enable: {'YES' if self.if_id_write_en else 'NO'}\n"
                f"Control Hazard: {'YES' if self.control_hazard else 'NO'}\n"
                f"Load Use Hazard: {'YES' if self.load_use_hazard else 'NO'}\n"
                f"RS1 Data Source: {self.rs1_data_source}\n"
                f"RS2 Data Source: {self.rs2_data_source}")


@dataclass(frozen=True)
class IF_ID_Status:
    program_counter_if: int = 0
    instruction_if: int = 0

    @property
    def incremented_program_counter_if(self) -> int:
        return (self.program_counter_if + 4) & MASK_32

    @property
    def is_bubble(self) -> bool:
        return self.instruction_if == 0

    def __str__(self):
        return (f"PC @ IF: 0x{self.program_counter_if:08X}\n"
                f"Instruction @ IF: 0x{self.instruction_if:08X}\n"
                f"Incremented PC @ IF: 0x{self.incremented_program_counter_if:08X}")


@dataclass(frozen=True)
class ID_EX_Status:
    control_id: ControlWord = NOP_CONTROL

    pc_id: int = 0
    rs1_data_id: int = 0
    rs2_data_id: int = 0
    imm_id: int = 0

    rs1_id: int = 0
    rs2_id: int = 0
    rd_id: int = 0

    funct3_id: int = 0
    funct7_id: int = 0
    instruction_id: int = 0

    @property
    def is_bubble(self) -> bool:
        return self.instruction_id == 0

    def __str__(self):
        return (f"PC @ ID: 0x{self.pc_id:08X}\n"
                f"RS1 Data @ ID: 0x{self.rs1_data_id:08X}\n"
                f"RS2 Data @ ID: 0x{self.rs2_data_id:08X}\n"
                f"IMM @ ID: 0x{self.imm_id & MASK_32:08X}\n"
                f"RS1 Addr @ ID: x{self.rs1_id}\n"
                f"RS2 Addr @ ID: x{self.rs2_id}\n"
                f"RD Addr @ ID: x{self.rd_id}\n"
                f"Funct3 @ ID: 0b{self.funct3_id:03b}\n"
                f"Funct7 @ ID: 0b{self.funct7_id:07b}\n"
                f"Control @ ID: {self.control_id}")


@dataclass(frozen=True)
class EX_MEM_Status:
    control_ex: ControlWord = NOP_CONTROL

    alu_result_ex: int = 0
    store_data_ex: int = 0
    pc_ex: int = 0
    rd_ex: int = 0
    funct3_ex: int = 0
    instruction_ex: int = 0

    @property
    def is_bubble(self) -> bool:
        return self.instruction_ex == 0

    @property
    def rd_data_ex(self) -> int:
        """Value this instruction will write back, as known before MEM."""
        if self.control_ex.rd_src == RD_Source.PC_PLUS_4:
            return (self.pc_ex + 4) & MASK_32
        return self.alu_result_ex

    def __str__(self):
        return (f"PC @ EX: 0x{self.pc_ex:08X}\n"
                f"ALU Result @ EX: 0x{self.alu_result_ex:08X}\n"
                f"Store Data @ EX: 0x{self.store_data_ex:08X}\n"
                f"RD Addr @ EX: x{self.rd_ex}\n"
                f"Funct3 @ EX: 0b{self.funct3_ex:03b}\n"
                f"Control @ EX: {self.control_ex}")


@dataclass(frozen=True)
class MEM_WB_Status:
    control_mem: ControlWord = NOP_CONTROL

    execution_data_mem: int = 0
    memory_data_mem: int = 0
    pc_mem: int = 0
    rd_mem: int = 0
    instruction_mem: int = 0

    @property
    def is_bubble(self) -> bool:
        return self.instruction_mem == 0

    def __str__(self):
        return (f"PC @ MEM: 0x{self.pc_mem:08X}\n"
                f"Execution Data @ MEM: 0x{self.execution_data_mem:08X}\n"
                f"Memory Data @ MEM: 0x{self.memory_data_mem:08X}\n"
                f"RD Addr @ MEM: x{self.rd_mem}\n"
                f"RD Source @ MEM: {self.control_mem.rd_src}\n"
                f"Reg Write @ MEM: {'YES' if self.control_mem.reg_write_en else 'NO'}")


@dataclass(frozen=True)
class PipelineLatches:
    """The four pipeline register slots, always replaced together."""
    if_id: IF_ID_Status = field(default_factory=IF_ID_Status)
    id_ex: ID_EX_Status = field(default_factory=ID_EX_Status)
    ex_mem: EX_MEM_Status = field(default_factory=EX_MEM_Status)
    mem_wb: MEM_WB_Status = field(default_factory=MEM_WB_Status)


@dataclass(frozen=True)
class RegisterWrite:
    """Register write produced by the writeback stage in one step."""
    rd: int = 0
    value: int = 0
    enable: bool = False

    def __str__(self):
        if not self.enable:
            return "No register write"
        return f"x{self.rd} <= 0x{self.value:08X}"


@dataclass(frozen=True)
class StagePCs:
    fetch: int
    decode: int
    execute: int
    memory: int
    writeback: int

    def __str__(self):
        return (f"IF: 0x{self.fetch:08X} | ID: 0x{self.decode:08X} | EX: 0x{self.execute:08X} | "
                f"MEM: 0x{self.memory:08X} | WB: 0x{self.writeback:08X}")


@dataclass(frozen=True)
class AtomicMemTransaction:
    """Single store transaction."""
    occurred: bool = False
    address: int = 0
    data: int = 0
    type: MemoryWriteMask = MemoryWriteMask.NONE

    def __str__(self):
            if not self.occurred:
                return "No store operation was recorded."
            return f"Store occurred at {self.type} 0x{self.address:08X} with data 0x{self.data:08X}"

    def cmpct_str(self):
        if not self.occurred:
            return "No store"
        return f"{self.type} @ 0x{self.address:08X} <= 0x{self.data:08X}"


NO_TRANSACTION = AtomicMemTransaction()


@dataclass(frozen=True)
class PipelineStatus:
    cycle: int
    program_counter: int
    register_file: Tuple[int, ...]
    hazard_status: HazardStatus
    if_id_status: IF_ID_Status
    id_ex_status: ID_EX_Status
    ex_mem_status: EX_MEM_Status
    mem_wb_status: MEM_WB_Status
    last_write: RegisterWrite

    def register_lines(self) -> List[str]:
        return [f"x{i}: 0x{value:08X}" for i, value in enumerate(self.register_file)]

    def __str__(self):
        return (f"Cycle: {self.cycle} | PC: 0x{self.program_counter:08X}\n"
                f"{self.hazard_status}\n"
                f"{self.if_id_status}\n"
                f"{self.id_ex_status}\n"
                f"{self.ex_mem_status}\n"
                f"{self.mem_wb_status}\n"
                f"Last Write: {self.last_write}")


def unpack_words(data: bytes, word_amount: int, use_little_endian: bool = True) -> List[int]:
    """Unpack N 32-bit words from bytes. Uses little endian as default"""
    if len(data) < word_amount * WORD_SIZE_BYTES:
        raise ValueError(f"Not enough data to unpack the required number of words. Expected at least {word_amount * WORD_SIZE_BYTES} bytes, got {len(data)} bytes.")
    endian_char = "<" if use_little_endian else ">"
    return list(struct.unpack(f"{endian_char}{word_amount}I", data[: word_amount * WORD_SIZE_BYTES]))


def pack_words(words, use_little_endian: bool = True) -> bytes:
    endian_char = "<" if use_little_endian else ">"
    return b"".join(struct.pack(f"{endian_char}I", w & MASK_32) for w in words)
