__all__ = ['rootremover', 'cms_version']


def cms_version():
    from .. import __version__ as _cms_version
    return _cms_version


def rootremover(strlist, insert=False):
    """
    Find the longest common directory and replace it with {root}

    Arguments
    ---------
    strlist : list
        List of paths from which to find a common root and replace with
        '{root}'
    insert : bool
        If true, insert f'root: {root}' at the beginning of the short list.

    Return
    ------
    stem, short_list
        List with each element of strlist where the longest common root has
        been removed. If insert, then the root is inserted
    """
    import os

    strlist = list(strlist)
    if len(strlist) == 0:
        return '', []
    stem = os.path.dirname(strlist[0])
    while stem != '' and not all([
        _l.startswith(stem + '/') or _l.startswith(stem + os.sep)
        for _l in strlist
    ]):
        oldstem = stem
        stem = os.path.dirname(stem)
        if oldstem == stem:
            stem = ''
    if stem in ('', '/'):
        short_strlist = list(strlist)
    else:
        short_strlist = [
            '{root}' + _l[len(stem):]
            for _l in strlist
        ]
    if insert:
        short_strlist.insert(0, f'root: {stem}')

    return stem, short_strlist
