import logging

import numpy as np

from sketchsolve import ConstraintIdAllocator, ConstraintSystem, horizontal, line_ref
from sketchsolve.logging_utils import debug_log_call


def test_debug_log_call_summarises_arrays(caplog):
    logger = logging.getLogger("sketchsolve.tests.trace")

    @debug_log_call(logger)
    def scale(values, factor=2.0):
        return values * factor

    caplog.set_level(logging.DEBUG, logger=logger.name)
    result = scale(np.arange(20.0), factor=3.0)

    assert result[-1] == 57.0
    messages = [record.getMessage() for record in caplog.records]
    assert any("Entering" in m and "shape=(20,)" in m and "factor=3.0" in m for m in messages)
    assert any("Exiting" in m and "max=57" in m for m in messages)


def test_debug_log_call_is_silent_above_debug(caplog):
    logger = logging.getLogger("sketchsolve.tests.quiet")

    @debug_log_call(logger)
    def identity(value):
        return value

    caplog.set_level(logging.INFO, logger=logger.name)
    assert identity(5) == 5
    assert not caplog.records


def test_module_methods_are_traced(caplog):
    ids = ConstraintIdAllocator()
    system = ConstraintSystem()
    caplog.set_level(logging.DEBUG, logger="sketchsolve.system")
    system.add_constraint(horizontal(line_ref(1), ids=ids))

    messages = [record.getMessage() for record in caplog.records]
    assert any("Entering ConstraintSystem.add_constraint" in m for m in messages)
    # constraints render through describe()
    assert any("Horizontal#1" in m for m in messages)
