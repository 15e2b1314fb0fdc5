"""
Request and bid lifecycle tables.

Every status change in the negotiation flow is looked up here as
(current status, action) -> next status. A missing entry means the action
is not allowed at that stage.

  Request:  OPEN --accept--> IN_PROGRESS
            OPEN --close---> CLOSED
            OPEN --cancel--> CANCELLED

  Bid:      PENDING --accept---> ACCEPTED
            PENDING --reject---> REJECTED
            PENDING --withdraw-> WITHDRAWN
            PENDING --update---> PENDING
"""

from enum import Enum

from core.errors import InvalidState


class RequestStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class BidStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class RequestAction(str, Enum):
    ACCEPT_BID = "accept_bid"
    CLOSE = "close"
    CANCEL = "cancel"
    RECEIVE_BID = "receive_bid"


class BidAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    WITHDRAW = "withdraw"
    UPDATE = "update"


REQUEST_TRANSITIONS: dict[tuple[RequestStatus, RequestAction], RequestStatus] = {
    (RequestStatus.OPEN, RequestAction.ACCEPT_BID): RequestStatus.IN_PROGRESS,
    (RequestStatus.OPEN, RequestAction.CLOSE): RequestStatus.CLOSED,
    (RequestStatus.OPEN, RequestAction.CANCEL): RequestStatus.CANCELLED,
    # Receiving a bid leaves the request where it is.
    (RequestStatus.OPEN, RequestAction.RECEIVE_BID): RequestStatus.OPEN,
}

BID_TRANSITIONS: dict[tuple[BidStatus, BidAction], BidStatus] = {
    (BidStatus.PENDING, BidAction.ACCEPT): BidStatus.ACCEPTED,
    (BidStatus.PENDING, BidAction.REJECT): BidStatus.REJECTED,
    (BidStatus.PENDING, BidAction.WITHDRAW): BidStatus.WITHDRAWN,
    (BidStatus.PENDING, BidAction.UPDATE): BidStatus.PENDING,
}

_REQUEST_REJECTIONS = {
    RequestAction.ACCEPT_BID: "This request is no longer open",
    RequestAction.CLOSE: "Only open requests can be closed",
    RequestAction.CANCEL: "Only open requests can be cancelled",
    RequestAction.RECEIVE_BID: "This request is no longer accepting bids",
}

_BID_REJECTIONS = {
    BidAction.ACCEPT: "Only pending bids can be accepted",
    BidAction.REJECT: "Only pending bids can be rejected",
    BidAction.WITHDRAW: "Only pending bids can be withdrawn",
    BidAction.UPDATE: "Only pending bids can be updated",
}

# close/cancel target status -> action
CLOSING_ACTIONS = {
    RequestStatus.CLOSED: RequestAction.CLOSE,
    RequestStatus.CANCELLED: RequestAction.CANCEL,
}


def next_request_status(current: str, action: RequestAction) -> RequestStatus:
    try:
        return REQUEST_TRANSITIONS[(RequestStatus(current), action)]
    except (KeyError, ValueError):
        raise InvalidState(f"{_REQUEST_REJECTIONS[action]} (status is {current})") from None


def next_bid_status(current: str, action: BidAction) -> BidStatus:
    try:
        return BID_TRANSITIONS[(BidStatus(current), action)]
    except (KeyError, ValueError):
        raise InvalidState(f"{_BID_REJECTIONS[action]} (bid is {current})") from None
