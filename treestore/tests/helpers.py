"""Handlers shared by the test modules."""


def increment(state=0, payload=0, **_):
    return state + payload


def append(state=(), payload=None, **_):
    if payload is None:
        return state
    return state + (payload,)


def count(state=None, payload=None, **_):
    return 0 if state is None else state + 1
