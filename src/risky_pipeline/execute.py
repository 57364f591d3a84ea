from dataclasses import dataclass

from .schemes import AluOpCode, ID_EX_Status, MASK_32, to_signed

# Branch funct3 -> condition on (rs1, rs2)
BRANCH_CONDITIONS = {
    0b000: lambda a, b: a == b,                        # BEQ
    0b001: lambda a, b: a != b,                        # BNE
    0b100: lambda a, b: to_signed(a) < to_signed(b),   # BLT
    0b101: lambda a, b: to_signed(a) >= to_signed(b),  # BGE
    0b110: lambda a, b: a < b,                         # BLTU
    0b111: lambda a, b: a >= b,                        # BGEU
}


@dataclass(frozen=True)
class ExecuteResult:
    alu_result: int
    taken: bool
    target: int
    store_data: int


def alu_inst(operation: AluOpCode, op1: int, op2: int, pc: int = 0) -> int:
    op1 &= MASK_32
    op2 &= MASK_32
    shamt = op2 & 0x1F

    if   operation == AluOpCode.OP_ADD:    res = op1 + op2
    elif operation == AluOpCode.OP_SUB:    res = op1 - op2
    elif operation == AluOpCode.OP_SLL:    res = op1 << shamt
    elif operation == AluOpCode.OP_SRL:    res = op1 >> shamt
    elif operation == AluOpCode.OP_SRA:    res = to_signed(op1) >> shamt
    elif operation == AluOpCode.OP_SLT:    res = 1 if to_signed(op1) < to_signed(op2) else 0
    elif operation == AluOpCode.OP_SLTU:   res = 1 if op1 < op2 else 0
    elif operation == AluOpCode.OP_XOR:    res = op1 ^ op2
    elif operation == AluOpCode.OP_OR:     res = op1 | op2
    elif operation == AluOpCode.OP_AND:    res = op1 & op2
    elif operation == AluOpCode.OP_PC_ADD: res = pc + op2
    else:
        raise ValueError(f"Unsupported ALU operation: {operation}")

    return res & MASK_32 # Ensure 32-bit result


def comparator(funct3: int, rs1_val: int, rs2_val: int) -> bool:
    condition = BRANCH_CONDITIONS.get(funct3)
    if condition is None:
        return False
    return condition(rs1_val & MASK_32, rs2_val & MASK_32)


def final_target_adder(is_jalr: bool, pc: int, rs1_val: int, imm: int) -> int:
    # JALR bases on rs1, branches and JAL on the instruction's own PC
    target_base = rs1_val if is_jalr else pc
    raw_target_addr = (target_base + imm) & MASK_32
    # RISC-V requires the JALR target LSB to be 0
    return (raw_target_addr & 0xFFFFFFFE) if is_jalr else raw_target_addr


def alu_src_selector(id_ex: ID_EX_Status, rs2_val: int) -> int:
    return id_ex.imm_id & MASK_32 if id_ex.control_id.use_immediate else rs2_val


def execute_stage(id_ex: ID_EX_Status, rs1_val: int, rs2_val: int) -> ExecuteResult:
    """Run the ALU and resolve control flow for the instruction in EX.

    `rs1_val` and `rs2_val` are the operands after forwarding.
    """
    control = id_ex.control_id
    op2 = alu_src_selector(id_ex, rs2_val)
    alu_result = alu_inst(control.alu_op, rs1_val, op2, id_ex.pc_id)

    if control.is_jal or control.is_jalr:
        taken = True
    elif control.is_branch:
        taken = comparator(id_ex.funct3_id, rs1_val, rs2_val)
    else:
        taken = False

    target = final_target_adder(control.is_jalr, id_ex.pc_id, rs1_val, id_ex.imm_id)
    return ExecuteResult(alu_result, taken, target, rs2_val & MASK_32)
