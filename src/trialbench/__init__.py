"""Interactive command trial engine."""

from trialbench.browser import BrowserState, TrialResultBrowser
from trialbench.invoker import TrialInvoker
from trialbench.params import ParameterSet
from trialbench.session import CommandFlow, SessionController

__all__ = [
    "BrowserState",
    "CommandFlow",
    "ParameterSet",
    "SessionController",
    "TrialInvoker",
    "TrialResultBrowser",
]
