from .schemes import MASK_32, MEM_WB_Status, RD_Source, RegisterWrite


def rd_src_selector(mem_wb: MEM_WB_Status) -> RegisterWrite:
    """Select the value the MEM/WB instruction writes to the register file.

    Disabled writes, and writes aimed at x0, are reported with a zero
    placeholder value and enable cleared.
    """
    control = mem_wb.control_mem
    if not control.reg_write_en or mem_wb.rd_mem == 0:
        return RegisterWrite(rd=mem_wb.rd_mem, value=0, enable=False)

    sel = control.rd_src
    if sel == RD_Source.MEMORY_DATA:
        val = mem_wb.memory_data_mem
    elif sel == RD_Source.PC_PLUS_4:
        val = mem_wb.pc_mem + 4
    else:
        val = mem_wb.execution_data_mem

    return RegisterWrite(rd=mem_wb.rd_mem, value=val & MASK_32, enable=True)
