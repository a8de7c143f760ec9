from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

TENANT_STATUSES = ('pending', 'active', 'suspended', 'cancelled')


class Tenant(db.Model):
    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)
    clinic_name = db.Column(db.String(255), nullable=False)
    database_name = db.Column(db.String(64), nullable=True)  # NULL tant que la clinique n'est pas provisionnée
    status = db.Column(db.String(20), nullable=False, default='pending')
    subscription_plan = db.Column(db.String(50), nullable=True)
    subscription_start = db.Column(db.Date, nullable=True)
    subscription_end = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "clinic_name": self.clinic_name,
            "database_name": self.database_name,
            "status": self.status,
            "subscription_plan": self.subscription_plan,
            "subscription_start": self.subscription_start.strftime("%Y-%m-%d") if self.subscription_start else None,
            "subscription_end": self.subscription_end.strftime("%Y-%m-%d") if self.subscription_end else None,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S") if self.created_at else None,
        }

    def __repr__(self):
        return f'<Tenant {self.id} - {self.clinic_name} ({self.database_name})>'
