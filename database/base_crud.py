"""通用 CRUD 基类。

所有仓库都继承 BaseCRUD，复用按主键读取、按条件查询、创建与更新等通用能力。
每个方法都接受可选的外部会话：传入时在调用方事务内执行（不提交），
否则自行开启会话并提交。
"""
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from .connection import DatabaseConnection

ModelT = TypeVar("ModelT")


class BaseCRUD:
    """仓库通用基类。

    Attributes:
        conn: 注入的数据库连接。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    def _get_session(self) -> Session:
        return self.conn.get_session()

    def get_by_id(self, model: Type[ModelT], record_id: int,
                  session: Optional[Session] = None) -> Optional[ModelT]:
        """按主键获取记录。

        Args:
            model: 模型类。
            record_id: 主键。
            session: 外部会话（可选）。

        Returns:
            记录对象，不存在时返回 None。
        """
        if session:
            return session.get(model, record_id)

        with self._get_session() as sess:
            return sess.get(model, record_id)

    def get_for_tenant(self, model: Type[ModelT], tenant_id: int, record_id: int,
                       session: Optional[Session] = None) -> Optional[ModelT]:
        """按主键获取记录，并校验记录属于指定租户。

        其他租户的记录视为不存在。
        """
        def _query(sess):
            return sess.query(model).filter(
                model.id == record_id,
                model.tenant_id == tenant_id,
            ).first()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def get_all(self, model: Type[ModelT],
                filters: Optional[Dict[str, Any]] = None,
                order_by: Optional[Any] = None,
                limit: Optional[int] = None,
                session: Optional[Session] = None) -> List[ModelT]:
        """按等值条件查询记录。

        Args:
            model: 模型类。
            filters: 字段名到值的等值过滤条件（可选）。
            order_by: 排序表达式（可选）。
            limit: 最大返回条数（可选）。
            session: 外部会话（可选）。

        Returns:
            记录列表。
        """
        def _query(sess):
            query = sess.query(model)
            for field, value in (filters or {}).items():
                query = query.filter(getattr(model, field) == value)
            if order_by is not None:
                query = query.order_by(order_by)
            else:
                query = query.order_by(model.id)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def create(self, model: Type[ModelT], session: Optional[Session] = None,
               **fields: Any) -> ModelT:
        """创建一条记录。

        Args:
            model: 模型类。
            session: 外部会话（可选）。
            **fields: 字段值。

        Returns:
            新建的记录对象（已分配主键）。
        """
        def _do(sess):
            record = model(**fields)
            sess.add(record)
            sess.flush()
            sess.refresh(record)
            return record

        if session:
            return _do(session)

        with self._get_session() as sess:
            record = _do(sess)
            sess.commit()
            return record

    def update_by_id(self, model: Type[ModelT], record_id: int,
                     session: Optional[Session] = None,
                     **fields: Any) -> Optional[ModelT]:
        """按主键更新记录。

        Args:
            model: 模型类。
            record_id: 主键。
            session: 外部会话（可选）。
            **fields: 需要更新的字段。

        Returns:
            更新后的记录对象，不存在时返回 None。
        """
        def _do(sess):
            record = sess.get(model, record_id)
            if record is None:
                return None
            for field, value in fields.items():
                setattr(record, field, value)
            sess.flush()
            sess.refresh(record)
            return record

        if session:
            return _do(session)

        with self._get_session() as sess:
            record = _do(sess)
            if record is not None:
                sess.commit()
            return record

    def count(self, model: Type[ModelT],
              filters: Optional[Dict[str, Any]] = None,
              session: Optional[Session] = None) -> int:
        """统计满足等值条件的记录数。"""
        def _query(sess):
            query = sess.query(model)
            for field, value in (filters or {}).items():
                query = query.filter(getattr(model, field) == value)
            return query.count()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)
