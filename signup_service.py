"""
Seller signup: identity -> profile -> seller record, all-or-nothing.
"""

import logging
from typing import Dict, Optional, Tuple

from compensation import CompensationPlan
from exceptions import BackendError, ValidationFailure

logger = logging.getLogger(__name__)


class SignupResult:
    def __init__(self, success: bool, user_id: Optional[str] = None, error: Optional[str] = None,
                 status_code: int = 200):
        self.success = success
        self.user_id = user_id
        self.error = error
        self.status_code = status_code

    @classmethod
    def ok(cls, user_id: str) -> 'SignupResult':
        return cls(True, user_id=user_id)

    @classmethod
    def failed(cls, error: str, status_code: int = 400) -> 'SignupResult':
        return cls(False, error=error, status_code=status_code)

    def to_response(self) -> Tuple[Dict, int]:
        if self.success:
            return {'success': True, 'userId': self.user_id}, 200
        return {'error': self.error}, self.status_code


class SignupCompensator:
    """
    Creates the three records a new account needs and removes the completed
    ones, newest first, when a later write is rejected.

    Args:
        backend: store client (SupabaseAdminService, LocalBackend or a test double)
        role (str): user_type written to the identity metadata and the profile
        role_table (str): table holding the role record
    """

    def __init__(self, backend, role: str = 'seller', role_table: str = 'sellers'):
        self.backend = backend
        self.role = role
        self.role_table = role_table

    def signup(self, email, password, full_name=None, company_name=None) -> SignupResult:
        try:
            self._validate(email, password, full_name, company_name)

            plan = CompensationPlan(f'{self.role} signup')
            plan.add_step(
                'identity',
                lambda results: self.backend.create_identity(
                    email, password, {'full_name': full_name, 'user_type': self.role}
                ),
                undo=lambda identity: self.backend.delete_identity(identity['id'])
            )
            plan.add_step(
                'profile',
                lambda results: self._insert('profiles', {
                    'id': results['identity']['id'],
                    'user_type': self.role,
                    'full_name': full_name,
                    'company_name': company_name
                }),
                undo=lambda record: self.backend.delete('profiles', {'id': record['id']})
            )
            plan.add_step(
                'role_record',
                lambda results: self._insert(self.role_table, {'id': results['identity']['id']}),
                undo=lambda record: self.backend.delete(self.role_table, {'id': record['id']})
            )

            results = plan.execute()
            user_id = results['identity']['id']
            logger.info(f"Signed up {self.role} {user_id} ({email})")
            return SignupResult.ok(user_id)

        except ValidationFailure as e:
            logger.warning(f"Signup rejected: {e.message}")
            return SignupResult.failed(e.message, 400)
        except BackendError as e:
            logger.warning(f"Signup failed for {email}: {e.message}")
            return SignupResult.failed(e.message, 400)
        except Exception as e:
            logger.error(f"Unexpected signup error for {email}: {e}", exc_info=True)
            return SignupResult.failed('Internal server error', 500)

    def _insert(self, table: str, record: Dict) -> Dict:
        self.backend.insert(table, record)
        return record

    @staticmethod
    def _validate(email, password, full_name, company_name):
        if not isinstance(email, str) or not email.strip():
            raise ValidationFailure('Email is required')
        if not isinstance(password, str) or not password:
            raise ValidationFailure('Password is required')
        if full_name is not None and not isinstance(full_name, str):
            raise ValidationFailure('fullName must be a string')
        if company_name is not None and not isinstance(company_name, str):
            raise ValidationFailure('companyName must be a string')
