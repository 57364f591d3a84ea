import pytest

from risky_pipeline.hazards import forwarding_unit, hazard_protection_unit, rs_data_selector
from risky_pipeline.schemes import (
    AluOpCode,
    ControlWord,
    EX_MEM_Status,
    ID_EX_Status,
    InstructionShape,
    MEM_WB_Status,
    RSn_Source,
)

LOAD = ControlWord(InstructionShape.LOAD, AluOpCode.OP_ADD)
ALU = ControlWord(InstructionShape.ALU_REG, AluOpCode.OP_ADD)
STORE = ControlWord(InstructionShape.STORE, AluOpCode.OP_ADD)


# ---------------------------------------
# Hazard protection unit
# ---------------------------------------
@pytest.mark.parametrize("rs1, rs2, expected", [
    (5, 0, True),
    (0, 5, True),
    (6, 7, False),
])
def test_load_use_stall(rs1, rs2, expected):
    id_ex = ID_EX_Status(control_id=LOAD, rd_id=5)
    assert hazard_protection_unit(id_ex, rs1, rs2) is expected


def test_no_stall_for_load_into_x0():
    id_ex = ID_EX_Status(control_id=LOAD, rd_id=0)
    assert not hazard_protection_unit(id_ex, 0, 0)


def test_no_stall_for_non_loads():
    assert not hazard_protection_unit(ID_EX_Status(control_id=ALU, rd_id=5), 5, 5)
    assert not hazard_protection_unit(ID_EX_Status(), 0, 0)


# ---------------------------------------
# Forwarding unit
# ---------------------------------------
def test_ex_mem_has_priority_over_mem_wb():
    ex_mem = EX_MEM_Status(control_ex=ALU, rd_ex=3)
    mem_wb = MEM_WB_Status(control_mem=ALU, rd_mem=3)
    assert forwarding_unit(3, 3, ex_mem, mem_wb) == (RSn_Source.RD_DATA_AT_MEM, RSn_Source.RD_DATA_AT_MEM)


def test_forward_from_mem_wb():
    ex_mem = EX_MEM_Status(control_ex=ALU, rd_ex=4)
    mem_wb = MEM_WB_Status(control_mem=LOAD, rd_mem=3)
    assert forwarding_unit(3, 4, ex_mem, mem_wb) == (RSn_Source.RD_DATA_AT_WB, RSn_Source.RD_DATA_AT_MEM)


def test_x0_is_never_forwarded():
    ex_mem = EX_MEM_Status(control_ex=ALU, rd_ex=0)
    mem_wb = MEM_WB_Status(control_mem=ALU, rd_mem=0)
    assert forwarding_unit(0, 0, ex_mem, mem_wb) == (RSn_Source.REG_FILE_AT_ID, RSn_Source.REG_FILE_AT_ID)


def test_no_forward_without_register_write():
    ex_mem = EX_MEM_Status(control_ex=STORE, rd_ex=3)
    mem_wb = MEM_WB_Status(rd_mem=3)
    assert forwarding_unit(3, 3, ex_mem, mem_wb) == (RSn_Source.REG_FILE_AT_ID, RSn_Source.REG_FILE_AT_ID)


def test_link_instructions_forward_return_address():
    jal = EX_MEM_Status(control_ex=ControlWord(InstructionShape.JAL, AluOpCode.OP_PC_ADD),
                        pc_ex=0x1C, alu_result_ex=0x40, rd_ex=1)
    assert jal.rd_data_ex == 0x20
    assert forwarding_unit(1, 0, jal, MEM_WB_Status())[0] == RSn_Source.RD_DATA_AT_MEM
    jalr = EX_MEM_Status(control_ex=ControlWord(InstructionShape.JALR, AluOpCode.OP_ADD),
                         pc_ex=0xFFFFFFFC, alu_result_ex=0x40, rd_ex=1)
    assert jalr.rd_data_ex == 0
    alu = EX_MEM_Status(control_ex=ALU, pc_ex=0x1C, alu_result_ex=0x40, rd_ex=1)
    assert alu.rd_data_ex == 0x40


def test_rs_data_selector():
    assert rs_data_selector(RSn_Source.REG_FILE_AT_ID, 1, 2, 3) == 1
    assert rs_data_selector(RSn_Source.RD_DATA_AT_MEM, 1, 2, 3) == 2
    assert rs_data_selector(RSn_Source.RD_DATA_AT_WB, 1, 2, 3) == 3
