"""
Code for ORM schema objects.

.. currentmodule:: recordql.orm.schema

.. autosummary::
    :toctree:

    table
    row
    history
    column
    relationship

    decorators

"""
