"""The tool-augmented conversation loop.

This package contains the provider-independent core: tool selection
(``selector``), stream reassembly (``accumulator``), tool dispatch
(``dispatcher``) and the orchestrator state machine that ties them
together (``orchestrator``).
"""
