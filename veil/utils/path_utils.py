import os


def file_path_in_cwd(file_name):
    """
    Return the full path of the file named ``file_name`` in the current
    working directory.

    The working directory is looked up at call time. Leading separators in
    ``file_name`` do not escape it, so ``"/x"`` resolves to ``<cwd>/x``.
    The path is cleaned lexically; nothing is checked on disk.

    Args:
        file_name (str): File name or relative path

    Returns:
        str: Absolute path inside the current working directory

    Raises:
        OSError: If the working directory cannot be determined
    """
    cwd = os.getcwd()
    relative = os.path.splitdrive(os.fspath(file_name))[1].lstrip(os.sep + (os.altsep or ""))
    return os.path.normpath(os.path.join(cwd, relative))
