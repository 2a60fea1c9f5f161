"""
pyiglbuild - build orchestration for the libigl Python bindings.

Turns the binding unit sources under src/ into one native extension module
per enabled libigl module group, with generated glue, an __init__.py entry
point and a .pyi interface manifest per module.
"""

__version__ = "0.1.0"
