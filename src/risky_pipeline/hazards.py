"""Hazard protection and forwarding units.

Both units are pure functions over latch snapshots, so they can be checked
without building a pipeline.
"""
from typing import Tuple

from .schemes import EX_MEM_Status, ID_EX_Status, MEM_WB_Status, RSn_Source


def hazard_protection_unit(id_ex: ID_EX_Status, rs1_id: int, rs2_id: int) -> bool:
    """Detect a load-use hazard between EX and the instruction in decode.

    The loaded value only exists once the load has left MEM, so the
    dependent instruction has to wait one step in decode.
    """
    if not id_ex.control_id.mem_read_en:
        return False
    rd = id_ex.rd_id
    if rd == 0:
        return False
    return rd == rs1_id or rd == rs2_id


def _operand_source(rs: int, ex_mem: EX_MEM_Status, mem_wb: MEM_WB_Status) -> RSn_Source:
    if rs == 0:
        return RSn_Source.REG_FILE_AT_ID
    # EX/MEM holds the younger result, so it wins over MEM/WB
    if ex_mem.control_ex.reg_write_en and ex_mem.rd_ex == rs:
        return RSn_Source.RD_DATA_AT_MEM
    if mem_wb.control_mem.reg_write_en and mem_wb.rd_mem == rs:
        return RSn_Source.RD_DATA_AT_WB
    return RSn_Source.REG_FILE_AT_ID


def forwarding_unit(rs1_ex: int, rs2_ex: int,
                    ex_mem: EX_MEM_Status, mem_wb: MEM_WB_Status) -> Tuple[RSn_Source, RSn_Source]:
    """Select the source of each execute-stage operand."""
    return (_operand_source(rs1_ex, ex_mem, mem_wb),
            _operand_source(rs2_ex, ex_mem, mem_wb))


def rs_data_selector(source: RSn_Source, reg_file_value: int,
                     ex_mem_value: int, mem_wb_value: int) -> int:
    if source == RSn_Source.RD_DATA_AT_MEM:
        return ex_mem_value
    if source == RSn_Source.RD_DATA_AT_WB:
        return mem_wb_value
    return reg_file_value
