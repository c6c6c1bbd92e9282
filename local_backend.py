"""
Local auth/data store
Implements the same calls as SupabaseAdminService on top of SQLAlchemy, so the
API can run against a SQLite (or any SQLAlchemy) database in development and tests
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union

from sqlalchemy import DateTime, func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from exceptions import AuthenticationError, BackendError, RecordNotFound
from models import AuthSession, AuthUser, Base, PurchaseOrder, generate_uuid, init_database, row_to_dict

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class LocalBackend:
    """
    Auth admin + table access backed by a local database.
    Error messages mimic the hosted service so callers see the same text.
    """

    kind = 'local'

    def __init__(self, database_url: str = 'sqlite:///marketplace.db', session_ttl_hours: int = 24):
        self.db_config = init_database(database_url)
        self.session_ttl = timedelta(hours=session_ttl_hours)
        logger.info(f"Local backend ready at {database_url}")

    # ========================================
    # Auth admin
    # ========================================

    def create_identity(self, email: str, password: str, metadata: Optional[Dict] = None) -> Dict:
        email = (email or '').strip().lower()
        if '@' not in email or email.startswith('@') or email.endswith('@'):
            raise BackendError('Unable to validate email address: invalid format',
                               status_code=400, code='validation_failed')
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise BackendError(f'Password should be at least {MIN_PASSWORD_LENGTH} characters.',
                               status_code=422, code='weak_password')

        session = self.db_config.get_session()
        try:
            if session.query(AuthUser).filter(AuthUser.email == email).first():
                raise BackendError('A user with this email address has already been registered',
                                   status_code=422, code='email_exists')

            now = datetime.utcnow()
            user = AuthUser(
                id=generate_uuid(),
                email=email,
                encrypted_password=generate_password_hash(password),
                user_metadata=dict(metadata or {}),
                email_confirmed_at=now,
                created_at=now
            )
            session.add(user)
            session.commit()
            logger.info(f"Created identity {user.id} for {email}")
            return self._user_to_dict(user)
        except IntegrityError:
            session.rollback()
            raise BackendError('A user with this email address has already been registered',
                               status_code=422, code='email_exists')
        finally:
            session.close()

    def delete_identity(self, user_id: str) -> None:
        session = self.db_config.get_session()
        try:
            user = session.query(AuthUser).filter(AuthUser.id == user_id).first()
            if not user:
                raise BackendError('User not found', status_code=404, code='user_not_found')
            session.query(AuthSession).filter(AuthSession.user_id == user_id).delete()
            session.delete(user)
            session.commit()
            logger.info(f"Deleted identity {user_id}")
        except SQLAlchemyError as e:
            session.rollback()
            raise BackendError(str(e), status_code=500)
        finally:
            session.close()

    def sign_in_with_password(self, email: str, password: str) -> Dict:
        email = (email or '').strip().lower()
        session = self.db_config.get_session()
        try:
            user = session.query(AuthUser).filter(AuthUser.email == email).first()
            if not user or not check_password_hash(user.encrypted_password, password or ''):
                raise BackendError('Invalid login credentials', status_code=400, code='invalid_credentials')

            now = datetime.utcnow()
            auth_session = AuthSession(
                access_token=secrets.token_hex(32),
                user_id=user.id,
                created_at=now,
                expires_at=now + self.session_ttl
            )
            session.add(auth_session)
            session.commit()

            return {
                'access_token': auth_session.access_token,
                'token_type': 'bearer',
                'expires_in': int(self.session_ttl.total_seconds()),
                'user': self._user_to_dict(user)
            }
        finally:
            session.close()

    def get_user(self, access_token: str) -> Dict:
        session = self.db_config.get_session()
        try:
            auth_session = session.query(AuthSession).filter(AuthSession.access_token == access_token).first()
            if not auth_session or auth_session.expires_at < datetime.utcnow():
                raise AuthenticationError('Invalid or expired token')

            user = session.query(AuthUser).filter(AuthUser.id == auth_session.user_id).first()
            if not user:
                raise AuthenticationError('User from token does not exist')
            return self._user_to_dict(user)
        finally:
            session.close()

    @staticmethod
    def _user_to_dict(user: AuthUser) -> Dict:
        return {
            'id': user.id,
            'email': user.email,
            'user_metadata': user.user_metadata or {},
            'email_confirmed_at': user.email_confirmed_at.isoformat() if user.email_confirmed_at else None,
            'created_at': user.created_at.isoformat() if user.created_at else None
        }

    # ========================================
    # Tables
    # ========================================

    def select(self, table: str, filters: Optional[Dict] = None, order_by: Optional[str] = None,
               descending: bool = False, limit: Optional[int] = None) -> List[Dict]:
        tbl = self._table(table)
        stmt = select(tbl).where(*self._where(tbl, filters))
        if order_by:
            self._check_columns(tbl, [order_by])
            column = tbl.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit:
            stmt = stmt.limit(limit)

        session = self.db_config.get_session()
        try:
            return [row_to_dict(row) for row in session.execute(stmt)]
        except SQLAlchemyError as e:
            raise BackendError(str(e))
        finally:
            session.close()

    def select_one(self, table: str, filters: Dict) -> Dict:
        rows = self.select(table, filters, limit=2)
        if len(rows) != 1:
            raise RecordNotFound()
        return rows[0]

    def insert(self, table: str, rows: Union[Dict, List[Dict]]) -> List[Dict]:
        tbl = self._table(table)
        rows = [rows] if isinstance(rows, dict) else list(rows)
        if not rows:
            return []

        prepared = []
        for row in rows:
            self._check_columns(tbl, row.keys())
            values = self._coerce(tbl, row)
            if 'id' in tbl.c and tbl.c.id.default is not None and not values.get('id'):
                values['id'] = generate_uuid()
            prepared.append(values)

        session = self.db_config.get_session()
        try:
            for values in prepared:
                session.execute(tbl.insert().values(**values))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise self._integrity_error(e)
        except SQLAlchemyError as e:
            session.rollback()
            raise BackendError(str(e))
        finally:
            session.close()

        if 'id' not in tbl.c:
            return [dict(values) for values in prepared]
        ids = [values['id'] for values in prepared]
        by_id = {row['id']: row for row in self.select(table, {'id': ids})}
        return [by_id[row_id] for row_id in ids if row_id in by_id]

    def update(self, table: str, values: Dict, filters: Dict) -> List[Dict]:
        tbl = self._table(table)
        if not filters:
            raise BackendError('UPDATE requires a WHERE clause', code='21000')
        self._check_columns(tbl, values.keys())
        values = self._coerce(tbl, values)

        matches = self.select(table, filters)
        if not matches or not values:
            return matches
        ids = [row['id'] for row in matches]

        session = self.db_config.get_session()
        try:
            session.execute(tbl.update().where(tbl.c.id.in_(ids)).values(**values))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise self._integrity_error(e)
        except SQLAlchemyError as e:
            session.rollback()
            raise BackendError(str(e))
        finally:
            session.close()

        return self.select(table, {'id': ids})

    def delete(self, table: str, filters: Dict) -> List[Dict]:
        tbl = self._table(table)
        if not filters:
            raise BackendError('DELETE requires a WHERE clause', code='21000')

        matches = self.select(table, filters)
        if not matches:
            return []

        session = self.db_config.get_session()
        try:
            session.execute(tbl.delete().where(*self._where(tbl, filters)))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise BackendError(str(e))
        finally:
            session.close()
        return matches

    def rpc(self, name: str, params: Optional[Dict] = None):
        params = params or {}
        if name == 'generate_po_number':
            session = self.db_config.get_session()
            try:
                count = session.query(func.count(PurchaseOrder.id)).filter(
                    PurchaseOrder.seller_id == params.get('seller_id')
                ).scalar() or 0
            finally:
                session.close()
            return f"PO-{datetime.utcnow().year}-{count + 1:04d}"

        raise BackendError(f'Could not find the function public.{name} in the schema cache',
                           status_code=404, code='PGRST202')

    def ping(self) -> bool:
        session = self.db_config.get_session()
        try:
            session.execute(text('SELECT 1'))
            return True
        finally:
            session.close()

    # ========================================
    # Helpers
    # ========================================

    def _table(self, name: str):
        tbl = Base.metadata.tables.get(name)
        # auth tables are reachable only through the auth calls above
        if tbl is None or name.startswith('auth_'):
            raise BackendError(f'relation "public.{name}" does not exist', status_code=404, code='42P01')
        return tbl

    @staticmethod
    def _check_columns(tbl, keys):
        for key in keys:
            if key not in tbl.c:
                raise BackendError(f"Could not find the '{key}' column of '{tbl.name}' in the schema cache",
                                   code='PGRST204')

    def _where(self, tbl, filters: Optional[Dict]):
        clauses = []
        for key, value in (filters or {}).items():
            self._check_columns(tbl, [key])
            column = tbl.c[key]
            if isinstance(value, (list, tuple, set)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    @staticmethod
    def _coerce(tbl, values: Dict) -> Dict:
        coerced = {}
        for key, value in values.items():
            if isinstance(tbl.c[key].type, DateTime) and isinstance(value, str):
                try:
                    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
                except ValueError:
                    raise BackendError(f'invalid input syntax for type timestamp: "{value}"', code='22007')
                if parsed.tzinfo is not None:
                    parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
                value = parsed
            coerced[key] = value
        return coerced

    @staticmethod
    def _integrity_error(error: IntegrityError) -> BackendError:
        message = str(error.orig)
        if 'UNIQUE constraint failed' in message:
            target = message.split(':', 1)[-1].strip().split(',')[0]
            table_name, _, column = target.partition('.')
            return BackendError(f'duplicate key value violates unique constraint "{table_name}_{column}_key"',
                                code='23505', details=message)
        if 'NOT NULL constraint failed' in message:
            target = message.split(':', 1)[-1].strip()
            table_name, _, column = target.partition('.')
            return BackendError(f'null value in column "{column}" of relation "{table_name}" violates not-null constraint',
                                code='23502', details=message)
        return BackendError(message, code='23000')
