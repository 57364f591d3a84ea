import pytest

from risky_pipeline.assembler import assemble
from risky_pipeline.cpu_model import CPUModel


@pytest.fixture
def model():
    return CPUModel()


@pytest.fixture
def load_asm(model):
    """Assemble `source` into the model and optionally preset registers."""
    def _load(source, registers=None):
        model.load_program(assemble(source))
        if registers:
            model.set_registers(registers)
        return model
    return _load
