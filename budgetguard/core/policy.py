"""
Failure policy for collaborator calls made by the admission core.

Every call the core makes to an external collaborator reports a ResultKind.
What the caller does with a non-OK result is looked up here, keyed by the
boundary it runs under and the collaborator that was called, instead of
being decided ad hoc at each call site.
"""

from enum import Enum
from typing import Dict, Tuple


class CallSite(str, Enum):
    """Admission boundary a collaborator call is made from."""

    MUTATE = "mutate"
    VALIDATE = "validate"


class Collaborator(str, Enum):
    BUDGET_LOOKUP = "budget_lookup"
    USAGE = "usage"
    LIMIT_PARSE = "limit_parse"


class ResultKind(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    TRANSIENT_FAILURE = "transient_failure"
    MALFORMED = "malformed"


class FailureAction(str, Enum):
    """What the caller does after a collaborator call."""

    PROCEED = "proceed"
    # fail-open: the step contributes nothing and the request goes on
    SKIP = "skip"
    # fail-closed: the error is surfaced to the requester
    RAISE = "raise"


POLICY: Dict[Tuple[CallSite, Collaborator, ResultKind], FailureAction] = {
    (CallSite.VALIDATE, Collaborator.BUDGET_LOOKUP, ResultKind.NOT_FOUND): FailureAction.SKIP,
    (CallSite.VALIDATE, Collaborator.BUDGET_LOOKUP, ResultKind.TRANSIENT_FAILURE): FailureAction.SKIP,
    (CallSite.VALIDATE, Collaborator.USAGE, ResultKind.TRANSIENT_FAILURE): FailureAction.RAISE,
    (CallSite.VALIDATE, Collaborator.LIMIT_PARSE, ResultKind.MALFORMED): FailureAction.SKIP,
    (CallSite.MUTATE, Collaborator.BUDGET_LOOKUP, ResultKind.NOT_FOUND): FailureAction.SKIP,
    (CallSite.MUTATE, Collaborator.BUDGET_LOOKUP, ResultKind.TRANSIENT_FAILURE): FailureAction.SKIP,
    (CallSite.MUTATE, Collaborator.USAGE, ResultKind.TRANSIENT_FAILURE): FailureAction.SKIP,
    (CallSite.MUTATE, Collaborator.LIMIT_PARSE, ResultKind.MALFORMED): FailureAction.SKIP,
}


def action_for(site: CallSite, collaborator: Collaborator, kind: ResultKind) -> FailureAction:
    """Look up the action for a collaborator result.

    OK always proceeds. A combination missing from the table is a programming
    error and raises KeyError.
    """
    if kind == ResultKind.OK:
        return FailureAction.PROCEED
    return POLICY[(site, collaborator, kind)]
