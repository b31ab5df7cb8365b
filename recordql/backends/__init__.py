"""
SQL driver backends for recordql.

.. currentmodule:: recordql.backends

.. autosummary::
    :toctree:

    sqlite3

"""
from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)
