"""
DDL helpers.

.. currentmodule:: recordql.orm.ddl

.. autosummary::
    :toctree:

    ddlsession
"""
