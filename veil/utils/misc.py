def ignore_unused(*vals):
    """
    Mark any number of values, of any type, as used.

    Handy for imports kept only for their side effects, or variables that
    exist for debugging, which linters would otherwise report as unused.
    """
    for val in vals:
        del val
