"""关系句柄测试

测试 resolve_relationship 解析出的两种关系形态：
- 直接关系（一对多）：计数、分页、批量软删除 / 强制删除
- 多对多关系：未映射中间表物理删除，带软删除字段的映射中间表软删除
- 后代级联检测
"""

from datetime import datetime

import pytest
from sqlalchemy import Column, ForeignKey, Integer, String, Table, func, select
from sqlalchemy.orm import relationship
from sqlalchemy.orm.exc import DetachedInstanceError

from ycascade.orm import Base, CoreModel, CascadeSoftDeleteMixin, DeleteMode
from ycascade.orm.cascade import (
    DirectRelationshipHandle,
    InvalidCascadeConfiguration,
    InvalidRelationships,
    RelationshipKind,
    RelationshipWalker,
    ThroughPivotRelationshipHandle,
    resolve_relationship,
)


# ==================== 测试模型定义 ====================

class CrOrder(CascadeSoftDeleteMixin, CoreModel):
    __tablename__ = "cr_order"
    __table_args__ = {'extend_existing': True}

    cascade_deletes = ["lines"]

    lines = relationship("CrLine")


class CrLine(CascadeSoftDeleteMixin, CoreModel):
    __tablename__ = "cr_line"
    __table_args__ = {'extend_existing': True}

    cascade_deletes = ["notes"]

    order_id = Column(Integer, ForeignKey("cr_order.id"))
    notes = relationship("CrLineNote")


class CrLineNote(CoreModel):
    __tablename__ = "cr_line_note"
    __table_args__ = {'extend_existing': True}

    text = Column(String(100))
    line_id = Column(Integer, ForeignKey("cr_line.id"))


# 未映射的中间表，没有软删除字段
cr_post_tag = Table(
    "cr_post_tag",
    Base.metadata,
    Column("post_id", Integer, ForeignKey("cr_post.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("cr_tag.id"), primary_key=True),
    extend_existing=True,
)


class CrPost(CascadeSoftDeleteMixin, CoreModel):
    __tablename__ = "cr_post"
    __table_args__ = {'extend_existing': True}

    cascade_deletes = ["tags"]

    title = Column(String(100))
    tags = relationship("CrTag", secondary=cr_post_tag)


class CrTag(CoreModel):
    __tablename__ = "cr_tag"
    __table_args__ = {'extend_existing': True}

    name = Column(String(50))


class CrMemberRole(CoreModel):
    """映射了类的中间表，继承 deleted_at"""
    __tablename__ = "cr_member_role"
    __table_args__ = {'extend_existing': True}

    member_id = Column(Integer, ForeignKey("cr_member.id"))
    role_id = Column(Integer, ForeignKey("cr_role.id"))


class CrMember(CascadeSoftDeleteMixin, CoreModel):
    __tablename__ = "cr_member"
    __table_args__ = {'extend_existing': True}

    cascade_deletes = ["roles"]

    roles = relationship("CrRole", secondary="cr_member_role")


class CrRole(CoreModel):
    __tablename__ = "cr_role"
    __table_args__ = {'extend_existing': True}

    name = Column(String(50))


class CrShelf(CascadeSoftDeleteMixin, CoreModel):
    __tablename__ = "cr_shelf"
    __table_args__ = {'extend_existing': True}

    cascade_deletes = ["books"]

    books = relationship("CrBook")


class CrBook(CascadeSoftDeleteMixin, CoreModel):
    __tablename__ = "cr_book"
    __table_args__ = {'extend_existing': True}

    cascade_deletes = ["nope"]

    shelf_id = Column(Integer, ForeignKey("cr_shelf.id"))


# ==================== 辅助函数 ====================

def make_order(session, line_count):
    order = CrOrder()
    session.add(order)
    session.flush()
    lines = [CrLine(order_id=order.id) for _ in range(line_count)]
    session.add_all(lines)
    session.commit()
    return order, sorted(line.id for line in lines)


def make_post(session, tag_names):
    post = CrPost(title="hello")
    post.tags = [CrTag(name=name) for name in tag_names]
    session.add(post)
    session.commit()
    return post


def make_member(session, role_count):
    member = CrMember()
    session.add(member)
    session.flush()
    for i in range(role_count):
        role = CrRole(name=f"role{i}")
        session.add(role)
        session.flush()
        session.add(CrMemberRole(member_id=member.id, role_id=role.id))
    session.commit()
    return member


def pivot_deleted_ats(session, member_id):
    return session.scalars(
        select(CrMemberRole.deleted_at)
        .where(CrMemberRole.member_id == member_id)
        .order_by(CrMemberRole.role_id)
    ).all()


# ==================== 测试类 ====================

class TestResolveRelationship:
    """测试关系解析"""

    def test_one_to_many_is_direct(self, db_session):
        order, _ = make_order(db_session, 1)

        handle = resolve_relationship(order, "lines")

        assert isinstance(handle, DirectRelationshipHandle)
        assert handle.kind is RelationshipKind.DIRECT
        assert handle.target_class is CrLine
        assert not handle.is_through
        assert handle.session is db_session

    def test_secondary_is_through_pivot(self, db_session):
        post = make_post(db_session, ["a"])

        handle = resolve_relationship(post, "tags")

        assert isinstance(handle, ThroughPivotRelationshipHandle)
        assert handle.kind is RelationshipKind.THROUGH_PIVOT
        assert handle.is_through
        assert handle.pivot_table is cr_post_tag
        assert handle.target_class is None

    def test_mapped_pivot_target_class(self, db_session):
        member = make_member(db_session, 1)

        handle = resolve_relationship(member, "roles")

        assert handle.target_class is CrMemberRole

    def test_entity_without_session_raises(self):
        with pytest.raises(DetachedInstanceError):
            resolve_relationship(CrOrder(), "lines")

    def test_unknown_name_raises_key_error(self, db_session):
        order, _ = make_order(db_session, 0)

        with pytest.raises(KeyError):
            resolve_relationship(order, "missing")


class TestDirectRelationshipHandle:
    """测试直接关系句柄"""

    def test_count_and_exists_skip_soft_deleted(self, db_session):
        order, line_ids = make_order(db_session, 3)
        db_session.get(CrLine, line_ids[0]).deleted_at = datetime(2023, 1, 1)
        db_session.commit()

        handle = resolve_relationship(order, "lines")

        assert handle.count() == 2
        assert handle.exists() is True

    def test_empty_relationship(self, db_session):
        order, _ = make_order(db_session, 0)

        handle = resolve_relationship(order, "lines")

        assert handle.count() == 0
        assert handle.exists() is False
        assert handle.fetch_all() == []
        assert handle.fetch_page(10) == []

    def test_fetch_page_walks_keys_in_order(self, db_session):
        order, line_ids = make_order(db_session, 5)
        handle = resolve_relationship(order, "lines")

        first = handle.fetch_page(2)
        second = handle.fetch_page(2, after=first[-1])
        third = handle.fetch_page(2, after=second[-1])

        assert first == line_ids[:2]
        assert second == line_ids[2:4]
        assert third == line_ids[4:]
        assert handle.fetch_page(2, after=third[-1]) == []

    def test_fetch_all_and_load(self, db_session):
        order, line_ids = make_order(db_session, 3)
        handle = resolve_relationship(order, "lines")

        assert [line.id for line in handle.fetch_all()] == line_ids
        assert [line.id for line in handle.load(line_ids[1:])] == line_ids[1:]

    def test_bulk_soft_delete_whole_collection(self, db_session, fixed_clock):
        order, line_ids = make_order(db_session, 3)
        handle = resolve_relationship(order, "lines")

        handle.bulk_delete(None, DeleteMode.SOFT)
        db_session.commit()

        deleted_ats = db_session.scalars(select(CrLine.deleted_at).order_by(CrLine.id)).all()
        assert deleted_ats == [fixed_clock] * 3
        assert handle.count() == 0

    def test_bulk_soft_delete_selected_keys(self, db_session):
        order, line_ids = make_order(db_session, 4)
        handle = resolve_relationship(order, "lines")

        handle.bulk_delete(line_ids[:2], DeleteMode.SOFT)

        assert handle.fetch_page(10) == line_ids[2:]

    def test_bulk_force_delete_removes_rows(self, db_session):
        order, _ = make_order(db_session, 3)
        handle = resolve_relationship(order, "lines")

        handle.bulk_delete(None, DeleteMode.FORCE)
        db_session.commit()

        assert db_session.scalar(select(func.count()).select_from(CrLine)) == 0

    def test_bulk_delete_expires_loaded_collection(self, db_session):
        order, _ = make_order(db_session, 2)
        assert len(order.lines) == 2
        handle = resolve_relationship(order, "lines")

        handle.bulk_delete(None, DeleteMode.FORCE)

        assert order.lines == []


class TestThroughPivotRelationshipHandle:
    """测试多对多关系句柄"""

    def test_unmapped_pivot_is_hard_deleted(self, db_session):
        post = make_post(db_session, ["python", "orm"])
        handle = resolve_relationship(post, "tags")
        assert handle.count() == 2

        affected = handle.bulk_delete(None, DeleteMode.SOFT)
        db_session.commit()

        assert affected == 2
        assert db_session.scalar(select(func.count()).select_from(cr_post_tag)) == 0
        assert db_session.scalar(select(func.count()).select_from(CrTag)) == 2

    def test_fetch_page_returns_related_keys(self, db_session):
        post = make_post(db_session, ["a", "b", "c"])
        tag_ids = sorted(tag.id for tag in post.tags)
        handle = resolve_relationship(post, "tags")

        assert handle.fetch_page(2) == tag_ids[:2]
        assert handle.fetch_page(2, after=tag_ids[1]) == tag_ids[2:]

    def test_fetch_all_requires_mapped_pivot(self, db_session):
        post = make_post(db_session, ["a"])
        handle = resolve_relationship(post, "tags")

        with pytest.raises(InvalidCascadeConfiguration, match="cr_post_tag"):
            handle.fetch_all()

    def test_mapped_pivot_fetch_all(self, db_session):
        member = make_member(db_session, 2)
        handle = resolve_relationship(member, "roles")

        rows = handle.fetch_all()

        assert [type(row) for row in rows] == [CrMemberRole, CrMemberRole]
        assert [row.role_id for row in rows] == sorted(row.role_id for row in rows)

    def test_soft_pivot_is_soft_deleted(self, db_session, fixed_clock):
        member = make_member(db_session, 2)
        handle = resolve_relationship(member, "roles")

        affected = handle.bulk_delete(None, DeleteMode.SOFT)
        db_session.commit()

        assert affected == 2
        assert pivot_deleted_ats(db_session, member.id) == [fixed_clock, fixed_clock]
        assert handle.count() == 0
        assert db_session.scalar(select(func.count()).select_from(CrRole)) == 2

    def test_soft_pivot_force_delete_removes_rows(self, db_session):
        member = make_member(db_session, 2)
        handle = resolve_relationship(member, "roles")

        handle.bulk_delete(None, DeleteMode.FORCE)
        db_session.commit()

        assert pivot_deleted_ats(db_session, member.id) == []


class TestDescendantCascades:
    """测试后代级联检测"""

    def test_target_with_live_grandchildren(self, db_session):
        order, line_ids = make_order(db_session, 2)
        db_session.add(CrLineNote(line_id=line_ids[1], text="fragile"))
        db_session.commit()

        walker = RelationshipWalker()

        assert walker.has_descendant_cascades(resolve_relationship(order, "lines")) is True

    def test_target_without_grandchildren(self, db_session):
        order, _ = make_order(db_session, 2)

        walker = RelationshipWalker()

        assert walker.has_descendant_cascades(resolve_relationship(order, "lines")) is False

    def test_deleted_grandchildren_are_ignored(self, db_session):
        order, line_ids = make_order(db_session, 1)
        note = CrLineNote(line_id=line_ids[0])
        note.deleted_at = datetime(2023, 1, 1)
        db_session.add(note)
        db_session.commit()

        walker = RelationshipWalker()

        assert walker.has_descendant_cascades(resolve_relationship(order, "lines")) is False

    def test_target_without_cascade_config(self, db_session):
        order, line_ids = make_order(db_session, 1)
        line = db_session.get(CrLine, line_ids[0])

        walker = RelationshipWalker()

        assert walker.has_descendant_cascades(resolve_relationship(line, "notes")) is False

    def test_unmapped_pivot_has_no_descendants(self, db_session):
        post = make_post(db_session, ["a"])

        walker = RelationshipWalker()

        assert walker.has_descendant_cascades(resolve_relationship(post, "tags")) is False

    def test_invalid_target_configuration(self, db_session):
        shelf = CrShelf()
        db_session.add(shelf)
        db_session.flush()
        db_session.add(CrBook(shelf_id=shelf.id))
        db_session.commit()

        walker = RelationshipWalker()

        with pytest.raises(InvalidRelationships) as exc_info:
            walker.has_descendant_cascades(resolve_relationship(shelf, "books"))
        assert exc_info.value.relationships == ["nope"]
        assert exc_info.value.model_class is CrBook


class TestPivotCascadeEndToEnd:
    """测试通过中间表级联"""

    def test_post_delete_detaches_tags(self, db_session):
        post = make_post(db_session, ["a", "b"])

        post.delete(commit=True)

        assert post.is_deleted
        assert db_session.scalar(select(func.count()).select_from(cr_post_tag)) == 0
        assert db_session.scalar(select(func.count()).select_from(CrTag)) == 2

    def test_post_force_delete(self, db_session):
        post = make_post(db_session, ["a"])
        post_id = post.id

        post.force_delete(commit=True)

        assert db_session.get(CrPost, post_id) is None
        assert db_session.scalar(select(func.count()).select_from(cr_post_tag)) == 0

    def test_member_delete_soft_deletes_pivot_rows(self, db_session):
        member = make_member(db_session, 2)

        member.delete(commit=True)

        assert member.is_deleted
        assert len(pivot_deleted_ats(db_session, member.id)) == 2
        assert all(ts is not None for ts in pivot_deleted_ats(db_session, member.id))
        assert db_session.scalar(select(func.count()).select_from(CrRole)) == 2
