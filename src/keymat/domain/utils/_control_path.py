"""
State-based method dispatch (a.k.a. "control-path" templating) via decorators.

This module provides a small mechanism for routing a single method call to
one of several registered implementations based on a runtime state value of
the receiver.

Core idea
---------
- A *base* method is declared on a class; its signature and docstring become
  the canonical ones.
- Implementations ("control paths") are registered for that method, each keyed
  by (ClassName, MethodName, StateVal).
- At call time the installed wrapper reads the receiver's state attribute and
  calls the implementation registered for the current value, passing the
  receiver as the first argument.

KeyMat uses this to select the dense or sparse kernel path of a matrix
operation from the matrix's current format state, after the facade has
resolved placement and format.

Important notes
---------------
- The first registration for a method replaces the class attribute with the
  dispatching wrapper.
- Registered implementations are stored in a mapping owned by each builder.
  Different builders do not share mappings.
"""

from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Optional,
    Type,
)
from typing_extensions import ParamSpec, TypeVar
from collections import namedtuple
from functools import wraps

P = ParamSpec("P")
R = TypeVar("R")

MissingPathHandler = Callable[[Callable[..., Any], Any], BaseException]
"""Factory building the exception raised when no control path matches."""


def create_path_builder(
    state_attr: str,
) -> Callable[
    [Type, Callable[P, R], Hashable, Optional[MissingPathHandler]],
    Callable[[Callable[P, R]], Callable[P, R]],
]:
    """
    Create a "path builder" used to register stateful control paths.

    Parameters
    ----------
    state_attr : str
        Name of the receiver attribute (or property) whose value selects the
        implementation.

    Returns
    -------
    Callable
        A function with signature

            (cls, method, state, on_missing=None) -> decorator

        where `decorator(sub_method)` registers `sub_method` for that control
        path and installs a dispatcher on `cls`.

    Examples
    --------
    >>> path = create_path_builder("mode")
    >>> class Op:
    ...     mode = "a"
    ...     def run(self, x): ...
    >>> @path(Op, Op.run, "a")
    ... def run_a(self, x):
    ...     return x + 1
    >>> Op().run(1)
    2
    """

    MethodKey = namedtuple("MethodKey", ["ClassName", "MethodName", "StateVal"])

    methods_map: Dict[MethodKey, Callable] = {}
    installed: set[tuple[str, str]] = set()

    def templator(
        cls: Type,
        method: Callable[P, R],
        state: Hashable,
        on_missing: Optional[MissingPathHandler] = None,
    ) -> Callable[[Callable[P, R]], Callable[P, R]]:
        """
        Build a decorator that registers a control path implementation.

        Parameters
        ----------
        cls : Type
            Class whose method is dispatched.
        method : Callable
            The base method. Its metadata is copied onto the wrapper.
        state : Hashable
            State value selecting the decorated implementation.
        on_missing : Optional[MissingPathHandler]
            Called as `on_missing(method, current_state)` when no path
            matches; the returned exception is raised. Defaults to raising
            `NotImplementedError`.

        Raises
        ------
        TypeError
            If `state` is not hashable.
        """
        try:
            hash(state)
        except TypeError:
            raise TypeError(f"Control-path state must be hashable. Got {state!r}")

        method_name = method.__name__
        key = MethodKey(cls.__name__, method_name, state)

        def decorator(sub_method: Callable[P, R]) -> Callable[P, R]:
            methods_map[key] = sub_method

            if (cls.__name__, method_name) in installed:
                return sub_method

            @wraps(method)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                current = getattr(self, state_attr)
                impl = methods_map.get(MethodKey(cls.__name__, method_name, current))
                if impl is not None:
                    return impl(self, *args, **kwargs)
                if on_missing is None:
                    raise NotImplementedError(
                        f"Missing control path ({state_attr}={current!r}) for {method_name}"
                    )
                raise on_missing(method, current)

            setattr(cls, method_name, wrapper)
            installed.add((cls.__name__, method_name))
            return sub_method

        return decorator

    return templator
