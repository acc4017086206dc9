"""Organization (client company) model."""

from datetime import datetime, timezone

from app.models import db


class Organization(db.Model):
    """A client company diagnosed by the consulting tenant.

    mission / vision / values double as an onboarding signal: when any of them
    is filled in, the MISSION_VISION_VALUES checklist item of the
    organization's projects counts as delivered.
    """

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    trade_name = db.Column(db.String(200))
    cnpj = db.Column(db.String(20), comment="Brazilian company registry number")
    industry = db.Column(db.String(100))
    size = db.Column(db.String(30), comment="MICRO | SMALL | MEDIUM | LARGE | ENTERPRISE")
    website = db.Column(db.String(300))

    address = db.Column(db.String(300))
    city = db.Column(db.String(100))
    state = db.Column(db.String(50))
    zip_code = db.Column(db.String(20))
    country = db.Column(db.String(60), default="Brazil")

    contact_name = db.Column(db.String(200))
    contact_email = db.Column(db.String(200))
    contact_phone = db.Column(db.String(40))

    mission = db.Column(db.Text)
    vision = db.Column(db.Text)
    values = db.Column(db.Text)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    projects = db.relationship("Project", back_populates="organization", lazy="dynamic")

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "cnpj", name="uq_organizations_tenant_cnpj"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "trade_name": self.trade_name,
            "cnpj": self.cnpj,
            "industry": self.industry,
            "size": self.size,
            "website": self.website,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "mission": self.mission,
            "vision": self.vision,
            "values": self.values,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Organization {self.id}: {self.name}>"
