from .assembler import AssemblerError, assemble, assemble_to_bytes
from .config import ConfigError, CoreConfig
from .cpu_model import CPUModel, PipelineStats
from .executor import ExecutionResult, execute_program, perform_step
from .instructions import InstructionFactory, decode
from .memory import LoaderError, SimulatedDataMemory, SimulatedInstructionMemory
from .schemes import PipelineStatus, RegisterWrite, StagePCs

__all__ = [
    "AssemblerError",
    "CPUModel",
    "ConfigError",
    "CoreConfig",
    "ExecutionResult",
    "InstructionFactory",
    "LoaderError",
    "PipelineStats",
    "PipelineStatus",
    "RegisterWrite",
    "SimulatedDataMemory",
    "SimulatedInstructionMemory",
    "StagePCs",
    "assemble",
    "assemble_to_bytes",
    "decode",
    "execute_program",
    "perform_step",
]
