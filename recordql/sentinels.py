"""
Sentinel values used throughout the library.
"""


class Sentinel(object):
    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self):
        return "<{}>".format(self.name)

    def __bool__(self):
        return False


#: Marks that no value was passed or stored.
NO_VALUE = Sentinel("NO_VALUE")

#: Marks that a schema field has no default.
NO_DEFAULT = Sentinel("NO_DEFAULT")
