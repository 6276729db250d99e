"""
Multi-Operator Filter Expression Engine

This is the core of the visual grid multi-filter: the data model and the
algorithms that represent, validate, score, evaluate and translate a
user-built boolean filter tree.

ARCHITECTURAL GUARANTEE:
------------------------
This package contains ZERO knowledge of:
    - Canvas rendering or drag-and-drop
    - Storage backends
    - Natural language or suggestion models
    - Ambient browser/process state

Everything the engine needs from the outside world is injected
(configuration, interpreter ports, suggestion ports).
"""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
