__all__ = [
    'SubsetError', 'InvalidParameter', 'ProjectionFailure', 'EmptySubset',
    'DefensiveRepairWarning', 'Outcome', 'outcome'
]

from collections import namedtuple


class SubsetError(Exception):
    """
    Base class for failures reported by the subsetting core.
    """
    pass


class InvalidParameter(SubsetError, ValueError):
    """
    Raised before any computation when an input is malformed (ellipsoid,
    longitude/latitude, bounding box, index range, ...). The offending field
    is available as the field attribute.
    """
    def __init__(self, field, message):
        self.field = field
        super().__init__(f'{field}: {message}')


class ProjectionFailure(SubsetError, ValueError):
    """
    Raised when unprojection does not converge or yields an invalid
    longitude/latitude. Values are never clamped to hide this.
    """
    pass


class EmptySubset(SubsetError):
    """
    No grid cell (or timestep) is within the requested subset. The caller
    decides whether this aborts the request.
    """
    pass


class DefensiveRepairWarning(UserWarning):
    """
    Invalid metadata was replaced by a documented default.
    """
    pass


Outcome = namedtuple('Outcome', ['ok', 'value', 'reason'])


def outcome(func, *args, **kwds):
    """
    Call func and report success or failure instead of raising.

    Arguments
    ---------
    func : callable
        Any core operation (e.g., subset.reduce_subset)
    args, kwds :
        Passed to func

    Returns
    -------
    out : Outcome
        ok is True and value is the result of func, or ok is False, value is
        None, and reason is the string form of the SubsetError raised.
    """
    try:
        value = func(*args, **kwds)
    except SubsetError as e:
        return Outcome(False, None, str(e))
    return Outcome(True, value, '')
