"""Bytecode compiler and virtual machine for the Lox scripting language."""

__version__ = "0.1.0"
__all__ = ["__version__"]