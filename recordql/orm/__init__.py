"""
The core code for the ORM.

.. currentmodule:: recordql.orm

.. autosummary::
    :toctree:

    schema
    ddl

    query
    session

    inspection
    operators

"""
