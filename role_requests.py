"""
Role escalation requests.

A user asks to become a chef or an admin; an administrator approves or
rejects. Requests move pending -> approved or pending -> rejected and
never leave a terminal state. The decision is written with a
conditional update on ``request_status == pending`` so double-clicks and
concurrent admins resolve to a single outcome.

Approving a chef request issues a ``chef-####`` identifier. Candidates
already held by a user or issued by another request are skipped, and
the unique index on ``requests.issued_chef_id`` settles races between
concurrent approvals. Once the grant is written to the user the request
is flagged ``role_applied``; repeating an approval after that changes
nothing, even if the user was granted another role since.
"""
import random
from typing import Iterator, Optional, Union

import structlog
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from errors import Conflict, InvalidArgument, InvalidTransition, NotFound
from schemas import RequestStatus, RequestType, Role, RoleRequest, User
from stores import RequestStore, UserStore

logger = structlog.get_logger(__name__)

CHEF_ID_MIN = 1000
CHEF_ID_MAX = 9999


class ChefIdIssuer:
    def __init__(self, users: UserStore, requests: RequestStore, max_attempts: int = 20, rng: Optional[random.Random] = None):
        self.users = users
        self.requests = requests
        self.max_attempts = max_attempts
        self.rng = rng or random.SystemRandom()

    def draw(self) -> str:
        return f"chef-{self.rng.randint(CHEF_ID_MIN, CHEF_ID_MAX)}"

    def candidates(self) -> Iterator[str]:
        """Yield unused chef ids, at most ``max_attempts`` draws."""
        for _ in range(self.max_attempts):
            chef_id = self.draw()
            if self.users.chef_id_taken(chef_id) or self.requests.chef_id_reserved(chef_id):
                logger.info("chef_id_collision", chef_id=chef_id)
                continue
            yield chef_id


def _parse(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidArgument(f"Invalid {label} '{value}'. Must be one of: {allowed}")


class RoleRequestWorkflow:
    def __init__(self, requests: RequestStore, users: UserStore, chef_ids: ChefIdIssuer):
        self.requests = requests
        self.users = users
        self.chef_ids = chef_ids

    def submit_request(self, user_name: str, user_email: str, request_type: Union[str, RequestType]) -> RoleRequest:
        request_type = _parse(RequestType, request_type, "request type")
        try:
            request = RoleRequest(user_name=user_name, user_email=user_email, request_type=request_type)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid request: {e.errors()[0]['msg']}")

        # one open request per user and type
        existing = self.requests.find_pending(request.user_email, request.request_type)
        if existing is not None:
            logger.info("request_already_pending", role_request_id=existing.id, request_type=existing.request_type)
            return existing

        created = self.requests.insert(request)
        logger.info("request_submitted", role_request_id=created.id, request_type=created.request_type)
        return created

    def get_request(self, request_id: str) -> RoleRequest:
        return self.requests.get(request_id)

    def decide_request(
        self,
        request_id: str,
        decision: Union[str, RequestStatus],
        override_role: Optional[Union[str, Role]] = None,
    ) -> RoleRequest:
        decision = _parse(RequestStatus, decision, "decision")
        if decision == RequestStatus.PENDING:
            raise InvalidArgument("Decision must be 'approved' or 'rejected'")
        role_override = _parse(Role, override_role, "role") if override_role else None

        request = self.requests.get(request_id)
        if request.request_status != RequestStatus.PENDING.value:
            return self._replay(request, decision)

        if decision == RequestStatus.REJECTED:
            decided = self.requests.decide(request.id, RequestStatus.REJECTED)
        else:
            user = self._requester(request)
            role = role_override or Role(request.request_type)
            decided = self._approve(request, user, role)
            if decided is not None:
                self._apply(decided, user)
                decided = self.requests.get(decided.id)

        if decided is None:
            # lost the race to another decision
            return self._replay(self.requests.get(request.id), decision)

        logger.info(
            "request_decided",
            role_request_id=decided.id,
            decision=decided.request_status,
            granted_role=decided.granted_role,
            chef_id=decided.chef_id,
        )
        return decided

    def _requester(self, request: RoleRequest) -> User:
        user = self.users.get_by_email(request.user_email)
        if user is None:
            raise NotFound("User not found", email=request.user_email)
        return user

    def _approve(self, request: RoleRequest, user: User, role: Role) -> Optional[RoleRequest]:
        if role != Role.CHEF:
            return self.requests.decide(request.id, RequestStatus.APPROVED, granted_role=role)
        if user.chef_id:
            # an existing chef keeps the id already issued to them
            return self.requests.decide(request.id, RequestStatus.APPROVED, granted_role=role, chef_id=user.chef_id)

        for chef_id in self.chef_ids.candidates():
            try:
                return self.requests.decide(
                    request.id, RequestStatus.APPROVED, granted_role=role, chef_id=chef_id, reserve_chef_id=True
                )
            except DuplicateKeyError:
                logger.info("chef_id_collision", chef_id=chef_id)
        raise Conflict("Could not issue a unique chef id; retry the approval", role_request_id=request.id)

    def _apply(self, request: RoleRequest, user: User) -> None:
        role = Role(request.granted_role or request.request_type)
        chef_id = request.chef_id if role == Role.CHEF else None

        if user.role != role.value or user.chef_id != chef_id:
            self.users.apply_role(user.email, role, chef_id)
            logger.info("role_granted", email=user.email, role=role.value, chef_id=chef_id)
        self.requests.mark_role_applied(request.id)

    def _replay(self, request: RoleRequest, decision: RequestStatus) -> RoleRequest:
        """Repeat of the recorded decision is a no-op; anything else is refused."""
        if request.request_status != decision.value:
            raise InvalidTransition(
                f"Request is already {request.request_status}",
                role_request_id=request.id,
            )
        if decision == RequestStatus.APPROVED and not request.role_applied:
            # the first approval stopped before the user update landed
            self._apply(request, self._requester(request))
            return self.requests.get(request.id)
        return request
