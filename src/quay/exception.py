class QuayError(Exception):
    ...
