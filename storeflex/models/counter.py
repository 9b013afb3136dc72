"""Counter model - per-tenant sequence behind human-readable codes."""
from sqlalchemy import Column, BigInteger, String, ForeignKey, UniqueConstraint
from storeflex.database import Base, BigIntegerPK


class Counter(Base):
    """Last issued number for one entity type of one tenant. Only touched under row lock."""

    __tablename__ = 'counter'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'entity', name='uq_counter_tenant_entity'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    entity = Column(String(40), nullable=False)
    last_id = Column(BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<Counter(tenant_id={self.tenant_id}, entity='{self.entity}', last_id={self.last_id})>"
