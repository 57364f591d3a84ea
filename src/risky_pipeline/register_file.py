from typing import Optional, Tuple

from .schemes import MASK_32, NUM_REGISTERS, RegisterWrite


class RegisterFile:
    """32 x 32-bit integer registers. x0 reads as zero and ignores writes."""

    def __init__(self):
        self._values = [0] * NUM_REGISTERS

    def read(self, reg_addr: int, pending_write: Optional[RegisterWrite] = None) -> int:
        """Combinational read port.

        `pending_write` is the write the current step will commit. A matching
        nonzero destination is returned in place of the stored value, so a
        reader in the same step sees the result before the clock edge.
        """
        if reg_addr == 0:
            return 0
        if pending_write is not None and pending_write.enable and pending_write.rd == reg_addr:
            return pending_write.value & MASK_32
        return self._values[reg_addr]

    def write(self, reg_addr: int, value: int) -> bool:
        """Clocked write port. Returns False when the write had no effect."""
        if not 0 <= reg_addr < NUM_REGISTERS:
            raise IndexError(f"Register index out of range: x{reg_addr}")
        if reg_addr == 0:
            return False
        self._values[reg_addr] = value & MASK_32
        return True

    def commit(self, register_write: RegisterWrite) -> bool:
        if not register_write.enable:
            return False
        return self.write(register_write.rd, register_write.value)

    def snapshot(self) -> Tuple[int, ...]:
        return tuple(self._values)

    def __getitem__(self, reg_addr: int) -> int:
        return self.read(reg_addr)

    def __str__(self):
        return "\n".join(f"x{i}: 0x{value:08X}" for i, value in enumerate(self._values))
