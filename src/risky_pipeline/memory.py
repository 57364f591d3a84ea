import logging
import struct
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .schemes import (
    AtomicMemTransaction,
    EX_MEM_Status,
    MASK_32,
    MemoryWriteMask,
    NO_TRANSACTION,
    WORD_SIZE_BYTES,
    pack_words,
    sign_extend,
    unpack_words,
)

clean_out = logging.getLogger('riscv.clean')
raw_out = logging.getLogger('riscv.raw')


class LoaderError(Exception):
    """Raised when a payload does not fit the memory it is loaded into."""
    pass


def validate_payload(data: bytearray, capacity_bytes: int) -> bytearray:
    """Checks size and alignment of a payload, padding it to whole words."""
    # 1. Alignment Check
    if len(data) % WORD_SIZE_BYTES != 0:
        padding = WORD_SIZE_BYTES - (len(data) % WORD_SIZE_BYTES)
        clean_out.warning(f"Padding payload with {padding} bytes for alignment.")
        data += b'\x00' * padding

    # 2. Size Check
    word_count = len(data) // WORD_SIZE_BYTES
    max_words = capacity_bytes // WORD_SIZE_BYTES
    if word_count > max_words:
        raise LoaderError(f"Payload too large: {word_count} words. Max allowed is {max_words}.")
    clean_out.debug(f"Checked payload size: {word_count}/{max_words} words (OK)")
    return data


def _as_payload(program: Union[bytes, bytearray, Iterable[int]]) -> bytearray:
    if isinstance(program, (bytes, bytearray)):
        return bytearray(program)
    return bytearray(pack_words(program))


class SimulatedInstructionMemory:
    """Read-only instruction store seen by the fetch stage."""

    def __init__(self, base: int = 0x0, size: int = 4096):
        self.base = base
        self.size = size
        self.memory = bytearray(size)
        self.out_of_range_accesses = 0

    def contains(self, address: int, width: int = WORD_SIZE_BYTES) -> bool:
        return self.base <= address and address + width <= self.base + self.size

    def load_program(self, program: Union[bytes, bytearray, Iterable[int]], address: Optional[int] = None) -> int:
        """Place a program (raw little-endian bytes or a list of words) in memory.

        Returns the number of words written.
        """
        start = self.base if address is None else address
        if start & 0x3 or not self.contains(start, 0):
            raise LoaderError(f"Load address 0x{start:08X} is not a word address inside instruction memory.")
        data = validate_payload(_as_payload(program), self.base + self.size - start)
        offset = start - self.base
        self.memory[offset:offset + len(data)] = data
        clean_out.info(f"Loaded {len(data) // WORD_SIZE_BYTES} words at 0x{start:08X}")
        return len(data) // WORD_SIZE_BYTES

    def fetch(self, address: int) -> int:
        """Return the little-endian word at `address`; 0 outside the store."""
        if not self.contains(address):
            self.out_of_range_accesses += 1
            clean_out.debug(f"Instruction fetch outside memory at 0x{address:08X}")
            return 0
        return struct.unpack_from('<I', self.memory, address - self.base)[0]


@dataclass
class SimulatedDataMemory:
    # Using a dict for sparse memory: {word_address: 32_bit_int}
    # This avoids initializing massive arrays.
    base: int = 0x0
    size: int = 4096
    memory: Dict[int, int] = field(default_factory=dict)
    transactions_history: List[AtomicMemTransaction] = field(default_factory=list)
    out_of_range_accesses: int = 0

    def contains(self, address: int) -> bool:
        word_addr = address & 0xFFFFFFFC
        return self.base <= word_addr and word_addr + WORD_SIZE_BYTES <= self.base + self.size

    def load_bytes(self, payload: Union[bytes, bytearray, Iterable[int]], address: Optional[int] = None) -> int:
        """Initialise memory contents from bytes or a list of words."""
        start = self.base if address is None else address
        if start & 0x3 or not (self.base <= start <= self.base + self.size):
            raise LoaderError(f"Load address 0x{start:08X} is not a word address inside data memory.")
        data = validate_payload(_as_payload(payload), self.base + self.size - start)
        words = unpack_words(bytes(data), len(data) // WORD_SIZE_BYTES)
        for i, word in enumerate(words):
            self.memory[start + i * WORD_SIZE_BYTES] = word
        clean_out.info(f"Loaded {len(words)} data words at 0x{start:08X}")
        return len(words)

    def store_data(self, transaction: AtomicMemTransaction):
        """
        Stores data using a 4-bit byte mask (strobe).
        Out-of-range stores are dropped.
        """
        if not transaction.occurred or transaction.type == MemoryWriteMask.NONE:
            return
        if not self.contains(transaction.address):
            self.out_of_range_accesses += 1
            clean_out.warning(f"Store outside data memory dropped: {transaction.cmpct_str()}")
            return

        word_addr = transaction.address & 0xFFFFFFFC
        byte_mask = transaction.type.value
        # Get existing word or 0
        current_word = self.memory.get(word_addr, 0)

        new_word = current_word
        for i in range(4):
            if (byte_mask >> i) & 1:
                # Clear the byte
                mask = ~(0xFF << (8 * i)) & 0xFFFFFFFF
                # Insert the new byte from the aligned data
                new_byte = (transaction.data >> (8 * i)) & 0xFF
                new_word = (new_word & mask) | (new_byte << (8 * i))

        self.memory[word_addr] = new_word
        self.transactions_history.append(transaction)
        raw_out.debug(f"MEM {transaction.cmpct_str()}")

    def load_data(self, address: int) -> int:
        """
        Returns the raw 32-bit word from the word-aligned address.
        """
        if not self.contains(address):
            self.out_of_range_accesses += 1
            clean_out.warning(f"Load outside data memory at 0x{address:08X}, returning 0")
            return 0
        word_addr = address & 0xFFFFFFFC
        return self.memory.get(word_addr, 0)

    def get_memory_snapshot(self) -> Dict[int, int]:
        """
        Returns a snapshot of the current memory state.
        """
        return self.memory.copy()


def dmem_intf_inst(ex_mem: EX_MEM_Status, data_memory: SimulatedDataMemory) -> Tuple[int, AtomicMemTransaction]:
    """Memory stage for the instruction held in EX/MEM.

    Returns the (extended) load result and the store transaction that has to
    be committed at the end of the step.
    """
    control = ex_mem.control_ex
    f3 = ex_mem.funct3_ex
    addr = ex_mem.alu_result_ex
    addr_lsb = addr & 0x3

    transaction = NO_TRANSACTION
    if control.mem_write_en:
        rs2_data = ex_mem.store_data_ex
        byte_mask = 0
        ram_wdata = 0

        if f3 == 0b000:   # SB
            byte_mask = 1 << addr_lsb
            ram_wdata = (rs2_data & 0xFF) << (8 * addr_lsb)
        elif f3 == 0b001: # SH
            byte_mask = 0b0011 if addr_lsb < 2 else 0b1100
            ram_wdata = (rs2_data & 0xFFFF) << (16 * (addr_lsb >> 1))
        elif f3 == 0b010: # SW
            byte_mask = 0b1111
            ram_wdata = rs2_data

        transaction = AtomicMemTransaction(
            occurred=True,
            address=addr,
            data=ram_wdata & MASK_32,
            type=MemoryWriteMask(byte_mask),
        )

    final_read = 0
    if control.mem_read_en:
        raw_ram_data = data_memory.load_data(addr)

        if f3 == 0b000: # LB
            final_read = sign_extend((raw_ram_data >> (8 * addr_lsb)) & 0xFF, 8)
        elif f3 == 0b001: # LH
            final_read = sign_extend((raw_ram_data >> (16 * (addr_lsb >> 1))) & 0xFFFF, 16)
        elif f3 == 0b010: # LW
            final_read = raw_ram_data
        elif f3 == 0b100: # LBU
            final_read = (raw_ram_data >> (8 * addr_lsb)) & 0xFF
        elif f3 == 0b101: # LHU
            final_read = (raw_ram_data >> (16 * (addr_lsb >> 1))) & 0xFFFF

    return final_read & MASK_32, transaction
