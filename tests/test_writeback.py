from risky_pipeline.schemes import (
    AluOpCode,
    ControlWord,
    InstructionShape,
    MEM_WB_Status,
    RegisterWrite,
)
from risky_pipeline.writeback import rd_src_selector


def test_alu_result_selected():
    mem_wb = MEM_WB_Status(control_mem=ControlWord(InstructionShape.ALU_REG, AluOpCode.OP_ADD),
                           execution_data_mem=0x55, memory_data_mem=0x66, rd_mem=3)
    assert rd_src_selector(mem_wb) == RegisterWrite(rd=3, value=0x55, enable=True)


def test_memory_data_selected_for_loads():
    mem_wb = MEM_WB_Status(control_mem=ControlWord(InstructionShape.LOAD, AluOpCode.OP_ADD),
                           execution_data_mem=0x40, memory_data_mem=0x66, rd_mem=5)
    assert rd_src_selector(mem_wb).value == 0x66


def test_link_address_selected_for_jumps():
    mem_wb = MEM_WB_Status(control_mem=ControlWord(InstructionShape.JAL, AluOpCode.OP_PC_ADD),
                           execution_data_mem=0x40, pc_mem=0x1C, rd_mem=1)
    assert rd_src_selector(mem_wb) == RegisterWrite(rd=1, value=0x20, enable=True)


def test_disabled_write_reports_placeholder():
    mem_wb = MEM_WB_Status(control_mem=ControlWord(InstructionShape.STORE, AluOpCode.OP_ADD),
                           execution_data_mem=0x40, rd_mem=8)
    assert rd_src_selector(mem_wb) == RegisterWrite(rd=8, value=0, enable=False)


def test_write_to_x0_is_disabled():
    mem_wb = MEM_WB_Status(control_mem=ControlWord(InstructionShape.ALU_IMM, AluOpCode.OP_ADD),
                           execution_data_mem=5, rd_mem=0)
    assert not rd_src_selector(mem_wb).enable
