import logging

import coloredlogs


class dotdict(dict):
    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name)

    def __setattr__(self, name, value):
        self[name] = value


def install_logging(level='INFO', fmt=None):
    """
    Configure colored console logging for an entry script.

    Library modules only create loggers; nothing is installed on import.
    """
    if fmt is None:
        fmt = '%(asctime)s %(name)s %(levelname)s %(message)s'
    coloredlogs.install(level=level, fmt=fmt)
    return logging.getLogger('rmdp')
