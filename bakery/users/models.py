from bakery.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False)
    full_name = Column(String(100), nullable=True)
    hashed_password = Column(String, nullable=False)

    # owner / admin_pusat / kepala_produksi / kasir_cabang / kurir
    role = Column(String(30), nullable=False, default="kasir_cabang")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    branches = relationship(
        "UserBranch",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def branch_ids(self):
        return [ub.branch_id for ub in self.branches]


class UserBranch(Base):
    __tablename__ = "user_branches"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False)

    user = relationship("User", back_populates="branches")
    branch = relationship("Branch")

    __table_args__ = (
        UniqueConstraint("user_id", "branch_id", name="uq_user_branch"),
    )
