# storefront/repos/coupon_repo.py
from sqlalchemy import select, update, or_
from sqlalchemy.orm import Session

from storefront.data.models.coupon import CouponModel


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> CouponModel | None:
        return self.db.execute(
            select(CouponModel).where(CouponModel.code == code)
        ).scalar_one_or_none()

    def get(self, coupon_id: int) -> CouponModel | None:
        return self.db.get(CouponModel, coupon_id)

    def list_coupons(self, active: bool | None = None) -> list[CouponModel]:
        stmt = select(CouponModel).order_by(CouponModel.created_at.desc(), CouponModel.id.desc())
        if active is not None:
            stmt = stmt.where(CouponModel.active == active)
        return list(self.db.execute(stmt).scalars())

    def add(self, coupon: CouponModel) -> CouponModel:
        self.db.add(coupon)
        self.db.flush()
        return coupon

    def increment_usage(self, coupon_id: int) -> int:
        # warunkowo, zeby dwa rownolegle zamowienia nie przekroczyly max_uses
        result = self.db.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(CouponModel.max_uses.is_(None), CouponModel.used_count < CouponModel.max_uses),
            )
            .values(used_count=CouponModel.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
