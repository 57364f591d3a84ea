import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, Union

from .config import CoreConfig
from .control import control_inst
from .execute import execute_stage
from .hazards import forwarding_unit, hazard_protection_unit, rs_data_selector
from .instructions import InstructionFactory, decode
from .memory import SimulatedDataMemory, SimulatedInstructionMemory, dmem_intf_inst
from .register_file import RegisterFile
from .schemes import (
    EX_MEM_Status,
    HazardStatus,
    ID_EX_Status,
    IF_ID_Status,
    MASK_32,
    MEM_WB_Status,
    NO_TRANSACTION,
    PipelineLatches,
    PipelineStatus,
    RegisterWrite,
    StagePCs,
)
from .writeback import rd_src_selector

clean_out = logging.getLogger('riscv.clean')
raw_out = logging.getLogger('riscv.raw')


@dataclass
class PipelineStats:
    cycles: int = 0
    retired: int = 0
    stalls: int = 0
    flushes: int = 0

    @property
    def cpi(self) -> float:
        return self.cycles / self.retired if self.retired else 0.0


class CPUModel:
    """Cycle-accurate model of the five-stage RV32I pipeline.

    Every call to :meth:`step` evaluates all stages against the state left by
    the previous step and then replaces the four latches, the program counter,
    the register file entry and the data memory word in one go.
    """

    def __init__(self, config: Optional[CoreConfig] = None,
                 instruction_memory: Optional[SimulatedInstructionMemory] = None,
                 data_memory: Optional[SimulatedDataMemory] = None):
        self.config = config if config is not None else CoreConfig()
        self.instruction_memory = instruction_memory if instruction_memory is not None else \
            SimulatedInstructionMemory(self.config.imem_base, self.config.imem_size)
        self.data_memory = data_memory if data_memory is not None else \
            SimulatedDataMemory(self.config.dmem_base, self.config.dmem_size)
        self.register_file = RegisterFile()
        self.reset()

    # --- Control inputs ---

    def reset(self):
        """Return the pipeline to its reset state. Nothing is committed."""
        self.pc = self.config.reset_vector
        self.latches = PipelineLatches()
        self.hazard_status = HazardStatus()
        self.last_write = RegisterWrite()
        self.last_transaction = NO_TRANSACTION
        self.cycle_count = 0
        self.stats = PipelineStats()
        clean_out.info(f"Reset: PC <= 0x{self.pc:08X}")

    def load_program(self, program: Union[bytes, bytearray, Iterable[int]], address: Optional[int] = None) -> int:
        return self.instruction_memory.load_program(program, address)

    def load_data(self, payload: Union[bytes, bytearray, Iterable[int]], address: Optional[int] = None) -> int:
        return self.data_memory.load_bytes(payload, address)

    def set_registers(self, values: Mapping[int, int]):
        """Preset architectural registers, e.g. before the first step."""
        for reg_addr, value in values.items():
            self.register_file.write(reg_addr, value)

    def step(self, reset: bool = False) -> PipelineStatus:
        """Advance the pipeline by exactly one clock edge."""
        if reset:
            self.reset()
            return self.snapshot()

        current = self.latches
        if_id, id_ex, ex_mem, mem_wb = current.if_id, current.id_ex, current.ex_mem, current.mem_wb

        # --- WB: the write this step commits, also visible to readers below ---
        register_write = rd_src_selector(mem_wb)

        # --- ID ---
        decoded = decode(if_id.instruction_if)
        control = control_inst(decoded)
        rs1_data = self.register_file.read(decoded.rs1, register_write)
        rs2_data = self.register_file.read(decoded.rs2, register_write)
        stall = hazard_protection_unit(id_ex, decoded.rs1, decoded.rs2)

        # --- EX ---
        rs1_src, rs2_src = forwarding_unit(id_ex.rs1_id, id_ex.rs2_id, ex_mem, mem_wb)
        rs1_val = rs_data_selector(rs1_src, id_ex.rs1_data_id, ex_mem.rd_data_ex, register_write.value)
        rs2_val = rs_data_selector(rs2_src, id_ex.rs2_data_id, ex_mem.rd_data_ex, register_write.value)
        ex_result = execute_stage(id_ex, rs1_val, rs2_val)
        flow_change = ex_result.taken

        # --- MEM ---
        memory_data, transaction = dmem_intf_inst(ex_mem, self.data_memory)

        # --- IF ---
        fetch_pc = self.pc
        fetched = self.instruction_memory.fetch(fetch_pc)

        # --- Next latch values ---
        if flow_change:
            next_if_id = IF_ID_Status()
        elif stall:
            next_if_id = if_id
        else:
            next_if_id = IF_ID_Status(program_counter_if=fetch_pc, instruction_if=fetched)

        if flow_change or stall:
            next_id_ex = ID_EX_Status()
        else:
            next_id_ex = ID_EX_Status(
                control_id=control,
                pc_id=if_id.program_counter_if,
                rs1_data_id=rs1_data,
                rs2_data_id=rs2_data,
                imm_id=decoded.imm,
                rs1_id=decoded.rs1,
                rs2_id=decoded.rs2,
                rd_id=decoded.rd,
                funct3_id=decoded.funct3,
                funct7_id=decoded.funct7,
                instruction_id=decoded.word,
            )

        next_ex_mem = EX_MEM_Status(
            control_ex=id_ex.control_id,
            alu_result_ex=ex_result.alu_result,
            store_data_ex=ex_result.store_data,
            pc_ex=id_ex.pc_id,
            rd_ex=id_ex.rd_id,
            funct3_ex=id_ex.funct3_id,
            instruction_ex=id_ex.instruction_id,
        )

        next_mem_wb = MEM_WB_Status(
            control_mem=ex_mem.control_ex,
            execution_data_mem=ex_mem.alu_result_ex,
            memory_data_mem=memory_data,
            pc_mem=ex_mem.pc_ex,
            rd_mem=ex_mem.rd_ex,
            instruction_mem=ex_mem.instruction_ex,
        )

        if flow_change:
            next_pc = ex_result.target
        elif stall:
            next_pc = fetch_pc
        else:
            next_pc = (fetch_pc + 4) & MASK_32

        # --- Commit ---
        self.latches = PipelineLatches(next_if_id, next_id_ex, next_ex_mem, next_mem_wb)
        self.pc = next_pc
        self.hazard_status = HazardStatus(
            pc_write_en=not stall or flow_change,
            if_id_write_en=not stall or flow_change,
            control_hazard=flow_change,
            load_use_hazard=stall,
            rs1_data_source=rs1_src,
            rs2_data_source=rs2_src,
        )
        self.register_file.commit(register_write)
        self.last_write = register_write
        self.data_memory.store_data(transaction)
        self.last_transaction = transaction
        self._account(mem_wb, stall, flow_change)

        raw_out.debug(f"IF  0x{fetch_pc:08X} << 0x{fetched:08X}")
        if register_write.enable:
            raw_out.debug(f"WB  {register_write}")
        if stall:
            clean_out.debug(f"Cycle {self.cycle_count}: load-use stall on "
                            f"{InstructionFactory.disassemble(if_id.instruction_if)}")
        if flow_change:
            clean_out.debug(f"Cycle {self.cycle_count}: control flow change to 0x{next_pc:08X}, "
                            f"flushing IF/ID and ID/EX")

        return self.snapshot()

    def run(self, steps: int) -> PipelineStatus:
        status = self.snapshot()
        for _ in range(steps):
            status = self.step()
        return status

    def _account(self, mem_wb: MEM_WB_Status, stall: bool, flow_change: bool):
        self.cycle_count += 1
        self.stats.cycles += 1
        if not mem_wb.is_bubble:
            self.stats.retired += 1
        if stall:
            self.stats.stalls += 1
        if flow_change:
            self.stats.flushes += 1

    # --- Observability hooks ---

    def stage_pcs(self) -> StagePCs:
        return StagePCs(
            fetch=self.pc,
            decode=self.latches.if_id.program_counter_if,
            execute=self.latches.id_ex.pc_id,
            memory=self.latches.ex_mem.pc_ex,
            writeback=self.latches.mem_wb.pc_mem,
        )

    def registers(self) -> Tuple[int, ...]:
        return self.register_file.snapshot()

    def read_register(self, reg_addr: int) -> int:
        return self.register_file.read(reg_addr)

    def snapshot(self) -> PipelineStatus:
        return PipelineStatus(
            cycle=self.cycle_count,
            program_counter=self.pc,
            register_file=self.registers(),
            hazard_status=self.hazard_status,
            if_id_status=self.latches.if_id,
            id_ex_status=self.latches.id_ex,
            ex_mem_status=self.latches.ex_mem,
            mem_wb_status=self.latches.mem_wb,
            last_write=self.last_write,
        )
