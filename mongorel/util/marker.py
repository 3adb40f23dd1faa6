class _ABSENT_TYPE:
    """ A falsy marker to be used for arguments not provided to a function """
    def __repr__(self):
        return '-'
    def __bool__(self):
        return False


ABSENT = _ABSENT_TYPE()  # e.g. `where(field, value)` vs `where(field, operator, value)`
