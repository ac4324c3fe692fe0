from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Set

from app.core.errors import ForbiddenError, NotFoundError, ValidationError
from app.db import MANAGER_ROLES, CollaboratorRole, GiftList, repo

GIFT_LIST_TYPE = "gifts"


@dataclass(frozen=True)
class ListAccess:
    list: GiftList
    is_owner: bool
    can_manage: bool


class ListDirectory(Protocol):
    """Lists, collaborators and users as seen by the round engine."""

    def get_list_access(self, session, list_id: str, user_id: str) -> ListAccess:
        ...

    def users_exist(self, session, user_ids: Iterable[str]) -> Set[str]:
        ...

    def grant_list_access(self, session, list_id: str, owner_id: str, user_id: str, role: str) -> None:
        ...

    def list_manager_ids(self, session, list_id: str) -> Set[str]:
        ...

    def list_member_ids(self, session, list_id: str) -> List[str]:
        ...

    def get_owned_list(self, session, list_id: str, user_id: str) -> Optional[GiftList]:
        ...


class SqlListDirectory:
    def get_list_access(self, session, list_id: str, user_id: str) -> ListAccess:
        gift_list = repo.get_list(session, list_id)
        if gift_list is None or gift_list.deleted_at is not None:
            raise NotFoundError("List not found")
        if gift_list.list_type != GIFT_LIST_TYPE:
            raise ValidationError("Secret Santa is only available for gift lists")

        is_owner = str(gift_list.owner_id) == str(user_id)
        collaborator = None if is_owner else repo.get_collaborator(session, list_id, user_id)
        if not is_owner and collaborator is None:
            raise ForbiddenError("You do not have access to this list")

        can_manage = is_owner or collaborator.permission in MANAGER_ROLES
        return ListAccess(list=gift_list, is_owner=is_owner, can_manage=can_manage)

    def users_exist(self, session, user_ids: Iterable[str]) -> Set[str]:
        return repo.existing_user_ids(session, user_ids)

    def grant_list_access(
        self,
        session,
        list_id: str,
        owner_id: str,
        user_id: str,
        role: str = CollaboratorRole.VIEW.value,
    ) -> None:
        if str(owner_id) == str(user_id):
            return
        if repo.get_collaborator(session, list_id, user_id) is not None:
            return
        repo.add_collaborator(session, list_id, owner_id, user_id, role)

    def list_manager_ids(self, session, list_id: str) -> Set[str]:
        gift_list = repo.get_list(session, list_id)
        if gift_list is None:
            return set()
        managers = {gift_list.owner_id}
        managers.update(
            collaborator.user_id
            for collaborator in repo.list_collaborators(session, list_id)
            if collaborator.permission in MANAGER_ROLES
        )
        return managers

    def list_member_ids(self, session, list_id: str) -> List[str]:
        gift_list = repo.get_list(session, list_id)
        if gift_list is None:
            return []
        members = [gift_list.owner_id]
        members.extend(collaborator.user_id for collaborator in repo.list_collaborators(session, list_id))
        return list(dict.fromkeys(members))

    def get_owned_list(self, session, list_id: str, user_id: str) -> Optional[GiftList]:
        gift_list = repo.get_list(session, list_id)
        if gift_list is None or gift_list.deleted_at is not None:
            return None
        if str(gift_list.owner_id) != str(user_id):
            return None
        return gift_list
