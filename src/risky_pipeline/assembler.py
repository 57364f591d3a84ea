import logging
import re
import struct
from typing import Dict, Iterable, List, NamedTuple, Optional, Union

from .instructions import (
    OP_AUIPC,
    OP_BRANCH,
    OP_I_TYPE,
    OP_JAL,
    OP_JALR,
    OP_LOAD,
    OP_LUI,
    OP_R_TYPE,
    OP_STORE,
    OP_SYSTEM,
)
from .schemes import pack_words, sign_extend

raw_log = logging.getLogger('riscv.raw')
clean_log = logging.getLogger('riscv.clean')


class AssemblerError(Exception):
    """Raised for any source line the assembler cannot encode."""
    pass

# ==============================================================================
# 1. DEBUG LOGGING UTILITY
# ==============================================================================
class Log:
    """Assembler progress, routed to the riscv loggers."""

    @staticmethod
    def step(pc, msg):
        clean_log.debug(f"0x{pc:08X} | {msg}")

    @staticmethod
    def macro(old, new_list):
        clean_log.debug(f"  ↳ Macro: '{old}' -> {', '.join(new_list)}")

    @staticmethod
    def encode(val):
        # The raw hex value goes to the raw logger
        raw_log.debug(f"0x{val:08x}")
        le_bytes = struct.pack('<I', val).hex(' ')
        clean_log.debug(f"    ✓ Encoded: 0x{val:08x} | Bytes: [{le_bytes}]")

    @staticmethod
    def error(msg):
        clean_log.error(f"!!! ASSEMBLY ERROR: {msg}")

# ==============================================================================
# 2. ARCHITECTURE DEFINITIONS
# ==============================================================================

ABI_NAMES = [
    'zero', 'ra', 'sp', 'gp', 'tp', 't0', 't1', 't2',
    's0', 's1', 'a0', 'a1', 'a2', 'a3', 'a4', 'a5',
    'a6', 'a7', 's2', 's3', 's4', 's5', 's6', 's7',
    's8', 's9', 's10', 's11', 't3', 't4', 't5', 't6',
]

REGISTERS: Dict[str, int] = {name: idx for idx, name in enumerate(ABI_NAMES)}
REGISTERS.update({f'x{idx}': idx for idx in range(32)})
REGISTERS['fp'] = 8


class Encoding(NamedTuple):
    fmt: str
    opcode: int
    funct3: int = 0
    funct7: int = 0


# Operand layouts: R "rd, rs1, rs2" | I "rd, rs1, imm" | SHIFT "rd, rs1, shamt"
# MEM "rd, imm(rs1)" | S "rs2, imm(rs1)" | B "rs1, rs2, target" | U "rd, imm" | J "rd, target"
INSTRUCTIONS: Dict[str, Encoding] = {
    # --- Register-register ---
    'add':   Encoding('R', OP_R_TYPE, 0b000),
    'sub':   Encoding('R', OP_R_TYPE, 0b000, 0b0100000),
    'sll':   Encoding('R', OP_R_TYPE, 0b001),
    'slt':   Encoding('R', OP_R_TYPE, 0b010),
    'sltu':  Encoding('R', OP_R_TYPE, 0b011),
    'xor':   Encoding('R', OP_R_TYPE, 0b100),
    'srl':   Encoding('R', OP_R_TYPE, 0b101),
    'sra':   Encoding('R', OP_R_TYPE, 0b101, 0b0100000),
    'or':    Encoding('R', OP_R_TYPE, 0b110),
    'and':   Encoding('R', OP_R_TYPE, 0b111),

    # --- Register-immediate ---
    'addi':  Encoding('I', OP_I_TYPE, 0b000),
    'slti':  Encoding('I', OP_I_TYPE, 0b010),
    'sltiu': Encoding('I', OP_I_TYPE, 0b011),
    'xori':  Encoding('I', OP_I_TYPE, 0b100),
    'ori':   Encoding('I', OP_I_TYPE, 0b110),
    'andi':  Encoding('I', OP_I_TYPE, 0b111),
    'slli':  Encoding('SHIFT', OP_I_TYPE, 0b001),
    'srli':  Encoding('SHIFT', OP_I_TYPE, 0b101),
    'srai':  Encoding('SHIFT', OP_I_TYPE, 0b101, 0b0100000),

    # --- Memory ---
    'lb':    Encoding('MEM', OP_LOAD, 0b000),
    'lh':    Encoding('MEM', OP_LOAD, 0b001),
    'lw':    Encoding('MEM', OP_LOAD, 0b010),
    'lbu':   Encoding('MEM', OP_LOAD, 0b100),
    'lhu':   Encoding('MEM', OP_LOAD, 0b101),
    'sb':    Encoding('S', OP_STORE, 0b000),
    'sh':    Encoding('S', OP_STORE, 0b001),
    'sw':    Encoding('S', OP_STORE, 0b010),

    # --- Control flow ---
    'beq':   Encoding('B', OP_BRANCH, 0b000),
    'bne':   Encoding('B', OP_BRANCH, 0b001),
    'blt':   Encoding('B', OP_BRANCH, 0b100),
    'bge':   Encoding('B', OP_BRANCH, 0b101),
    'bltu':  Encoding('B', OP_BRANCH, 0b110),
    'bgeu':  Encoding('B', OP_BRANCH, 0b111),
    'jal':   Encoding('J', OP_JAL),
    'jalr':  Encoding('MEM', OP_JALR, 0b000),

    # --- Upper immediates ---
    'lui':   Encoding('U', OP_LUI),
    'auipc': Encoding('U', OP_AUIPC),

    # --- System ---
    'ecall': Encoding('SYS', OP_SYSTEM),
}

OPERAND_COUNT = {'R': 3, 'I': 3, 'SHIFT': 3, 'MEM': 3, 'S': 3, 'B': 3, 'U': 2, 'J': 2, 'SYS': 0}

NUMBER_RE = re.compile(r'[+-]?(0x[0-9a-f]+|0b[01]+|\d+)', re.IGNORECASE)

# ==============================================================================
# 3. HELPER FUNCTIONS
# ==============================================================================

def parse_reg(s):
    name = s.strip().lower()
    if name not in REGISTERS:
        raise AssemblerError(f"Unknown register: {s}")
    return REGISTERS[name]

def parse_imm(s):
    try:
        return int(s.strip(), 0)
    except ValueError:
        raise AssemblerError(f"Invalid immediate: {s}") from None

def fit_signed(val, bits, what):
    """Return `val` as a `bits` wide two's complement field."""
    if not -(1 << (bits - 1)) <= val < (1 << (bits - 1)):
        raise AssemblerError(f"{what} {val} does not fit in {bits} signed bits")
    return val & ((1 << bits) - 1)

def resolve_target(token, labels, pc):
    """Branch and jump targets are labels or literal PC-relative offsets."""
    key = token.strip().lower()
    if key in labels:
        return labels[key] - pc
    if NUMBER_RE.fullmatch(key):
        return parse_imm(key)
    raise AssemblerError(f"Unknown label: {token}")

def split_operands(line):
    """'lw x5, -4(sp)' -> ['lw', 'x5', '-4', 'sp']"""
    return [p for p in re.split(r'[,\s()]+', line) if p]

# ==============================================================================
# 4. CORE PROCESSING LOGIC
# ==============================================================================

def expand_li(rd, imm):
    if -2048 <= imm <= 2047:
        return [f"addi {rd}, zero, {imm}"]
    # ADDI sign-extends its immediate, so the upper part absorbs the borrow
    lower = sign_extend(imm, 12)
    upper = ((imm - lower) >> 12) & 0xFFFFF
    expansion = [f"lui {rd}, {upper}"]
    if lower:
        expansion.append(f"addi {rd}, {rd}, {lower}")
    return expansion

def expand_pseudo(mnemonic, args) -> Optional[List[str]]:
    if mnemonic == 'nop':
        return ["addi x0, x0, 0"]
    if mnemonic == 'mv':
        return [f"addi {args[0]}, {args[1]}, 0"]
    if mnemonic == 'j':
        return [f"jal x0, {args[0]}"]
    if mnemonic == 'ret':
        return ["jalr x0, 0(ra)"]
    if mnemonic == 'li':
        return expand_li(args[0], parse_imm(args[1]))
    return None

def expand_macros(raw_lines):
    """Strip comments, split labels onto their own lines and expand pseudo-instructions."""
    expanded = []
    for raw in raw_lines:
        line = raw.split('#')[0].strip()
        while ':' in line:
            label, line = line.split(':', 1)
            expanded.append(label.strip() + ':')
            line = line.strip()
        if not line:
            continue

        parts = split_operands(line)
        replacement = expand_pseudo(parts[0].lower(), parts[1:])
        if replacement is None:
            expanded.append(line)
            continue
        Log.macro(line, replacement)
        expanded.extend(replacement)
    return expanded

def encode_line(line, pc, labels):
    parts = split_operands(line)
    op = parts[0].lower()
    if op not in INSTRUCTIONS:
        raise AssemblerError(f"Unknown instruction: {op}")
    enc = INSTRUCTIONS[op]
    args = parts[1:]

    # "jal label" links into ra
    if op == 'jal' and len(args) == 1:
        args = ['ra'] + args
    if len(args) != OPERAND_COUNT[enc.fmt]:
        raise AssemblerError(f"'{op}' expects {OPERAND_COUNT[enc.fmt]} operands, got {len(args)}")

    head = (enc.funct3 << 12) | enc.opcode

    if enc.fmt == 'R':
        rd, rs1, rs2 = (parse_reg(a) for a in args)
        return (enc.funct7 << 25) | (rs2 << 20) | (rs1 << 15) | (rd << 7) | head

    if enc.fmt == 'I':
        rd, rs1 = parse_reg(args[0]), parse_reg(args[1])
        imm = fit_signed(parse_imm(args[2]), 12, "Immediate")
        return (imm << 20) | (rs1 << 15) | (rd << 7) | head

    if enc.fmt == 'SHIFT':
        rd, rs1, shamt = parse_reg(args[0]), parse_reg(args[1]), parse_imm(args[2])
        if not 0 <= shamt < 32:
            raise AssemblerError(f"Shift amount {shamt} out of range")
        return (enc.funct7 << 25) | (shamt << 20) | (rs1 << 15) | (rd << 7) | head

    if enc.fmt == 'MEM':
        rd = parse_reg(args[0])
        # Both "lw rd, imm(rs1)" and "jalr rd, rs1, imm"
        if args[1].lower() in REGISTERS:
            rs1, imm = parse_reg(args[1]), parse_imm(args[2])
        else:
            imm, rs1 = parse_imm(args[1]), parse_reg(args[2])
        imm = fit_signed(imm, 12, "Offset")
        return (imm << 20) | (rs1 << 15) | (rd << 7) | head

    if enc.fmt == 'S':
        rs2, rs1 = parse_reg(args[0]), parse_reg(args[2])
        imm = fit_signed(parse_imm(args[1]), 12, "Offset")
        return ((imm >> 5) << 25) | (rs2 << 20) | (rs1 << 15) | ((imm & 0x1F) << 7) | head

    if enc.fmt == 'B':
        rs1, rs2 = parse_reg(args[0]), parse_reg(args[1])
        offset = resolve_target(args[2], labels, pc)
        if offset & 1:
            raise AssemblerError(f"Branch offset {offset} is not even")
        imm = fit_signed(offset, 13, "Branch offset")
        return (((imm >> 12) & 1) << 31) | (((imm >> 5) & 0x3F) << 25) | (rs2 << 20) | (rs1 << 15) \
            | (((imm >> 1) & 0xF) << 8) | (((imm >> 11) & 1) << 7) | head

    if enc.fmt == 'U':
        rd, imm = parse_reg(args[0]), parse_imm(args[1])
        if not -(1 << 19) <= imm < (1 << 20):
            raise AssemblerError(f"Upper immediate {imm} does not fit in 20 bits")
        return ((imm & 0xFFFFF) << 12) | (rd << 7) | head

    if enc.fmt == 'J':
        rd = parse_reg(args[0])
        offset = resolve_target(args[1], labels, pc)
        if offset & 1:
            raise AssemblerError(f"Jump offset {offset} is not even")
        imm = fit_signed(offset, 21, "Jump offset")
        return (((imm >> 20) & 1) << 31) | (((imm >> 1) & 0x3FF) << 21) | (((imm >> 11) & 1) << 20) \
            | (((imm >> 12) & 0xFF) << 12) | (rd << 7) | head

    # SYS: ecall carries no operands
    return head

def assemble(source: Union[str, Iterable[str]], origin: int = 0) -> List[int]:
    """Convert assembly source (text or lines) into a list of machine words."""
    lines = source.splitlines() if isinstance(source, str) else list(source)

    clean_log.debug("--- Phase 1: Macro Expansion ---")
    try:
        lines = expand_macros(lines)
    except (IndexError, AssemblerError) as e:
        Log.error(f"Macro expansion failed: {e}")
        raise AssemblerError(f"Macro expansion failed: {e}") from e

    labels: Dict[str, int] = {}
    program = []
    pc = origin
    for line in lines:
        if line.endswith(':'):
            labels[line[:-1].strip().lower()] = pc
        else:
            program.append((pc, line))
            pc += 4

    clean_log.debug("--- Phase 2: Instruction Encoding ---")
    words = []
    for pc, line in program:
        Log.step(pc, f"Parsing: {line}")
        try:
            word = encode_line(line, pc, labels)
        except AssemblerError as e:
            Log.error(f"0x{pc:08X}: {e}")
            raise AssemblerError(f"0x{pc:08X} '{line}': {e}") from e
        Log.encode(word)
        words.append(word)
    return words

# ==============================================================================
# 5. STANDARDIZED API
# ==============================================================================

def assemble_to_bytes(source: Union[str, Iterable[str]], origin: int = 0) -> bytes:
    """
    Assembles source and returns the little-endian payload ready to be
    loaded into instruction memory.
    """
    return pack_words(assemble(source, origin))
