"""initial schema

Revision ID: a0f1c2d3e4b5
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a0f1c2d3e4b5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _fk(name: str, target: str, *, nullable: bool = True, ondelete: str = "SET NULL") -> sa.Column:
    return sa.Column(
        name,
        sa.String(length=36),
        sa.ForeignKey(f"{target}.id", ondelete=ondelete),
        nullable=nullable,
    )


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    op.create_table(
        "mills",
        _id(),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("region", sa.String(length=128), nullable=True),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column("commodity", sa.String(length=16), nullable=False),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_mills_code", "mills", ["code"], unique=True)
    op.create_index("ix_mills_region", "mills", ["region"])

    op.create_table(
        "users",
        _id(),
        _fk("mill_id", "mills"),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_mill_id", "users", ["mill_id"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("idx_users_role_active", "users", ["role", "is_active"])
    op.create_index("idx_users_mill_role", "users", ["mill_id", "role"])

    # ------------------------------------------------------------------
    # Audit log, notifications, alerts
    # ------------------------------------------------------------------
    op.create_table(
        "audit_logs",
        _id(),
        _fk("mill_id", "mills"),
        _fk("actor_user_id", "users"),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_logs_mill_action", "audit_logs", ["mill_id", "action"])
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_occurred_at", "audit_logs", ["occurred_at"])
    op.create_index("ix_audit_logs_time_desc", "audit_logs", [sa.text("occurred_at DESC")])

    op.create_table(
        "notifications",
        _id(),
        _fk("user_id", "users", nullable=False, ondelete="CASCADE"),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("action_url", sa.String(length=512), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read_at"])
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notifications_type", "notifications", ["type"])

    op.create_table(
        "alerts",
        _id(),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        _fk("recipient_id", "users"),
        sa.Column("recipient_role", sa.String(length=32), nullable=True),
        _fk("mill_id", "mills", ondelete="CASCADE"),
        sa.Column("resource_type", sa.String(length=64), nullable=True),
        sa.Column("resource_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("action_required", sa.String(length=255), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        _fk("acknowledged_by_id", "users"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _fk("resolved_by_id", "users"),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        _fk("created_by_id", "users"),
        *_timestamps(),
    )
    op.create_index("ix_alerts_recipient_status", "alerts", ["recipient_id", "status"])
    op.create_index("ix_alerts_role_mill", "alerts", ["recipient_role", "mill_id"])
    op.create_index("ix_alerts_mill_created", "alerts", ["mill_id", "created_at"])
    op.create_index("ix_alerts_type", "alerts", ["type"])
    op.create_index("ix_alerts_severity", "alerts", ["severity"])
    op.create_index("ix_alerts_status", "alerts", ["status"])

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------
    op.create_table(
        "compliance_templates",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("version", sa.String(length=16), nullable=False),
        sa.Column("commodity", sa.String(length=16), nullable=False),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column("region", sa.String(length=128), nullable=True),
        sa.Column("standard_reference", sa.String(length=255), nullable=True),
        sa.Column("certification_type", sa.String(length=64), nullable=True),
        sa.Column("sections", sa.JSON(), nullable=False),
        sa.Column("scoring_rules", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("change_reason", sa.Text(), nullable=True),
        _fk("previous_version_id", "compliance_templates"),
        _fk("created_by_id", "users"),
        *_timestamps(),
    )
    op.create_index("idx_compliance_templates_name_version", "compliance_templates", ["name", "version"])
    op.create_index("ix_compliance_templates_is_active", "compliance_templates", ["is_active"])

    op.create_table(
        "compliance_audits",
        _id(),
        _fk("mill_id", "mills", nullable=False, ondelete="CASCADE"),
        _fk("template_id", "compliance_templates", nullable=False, ondelete="RESTRICT"),
        _fk("auditor_id", "users"),
        sa.Column("audit_type", sa.String(length=16), nullable=False),
        sa.Column("audit_date", sa.Date(), nullable=False),
        sa.Column("batch_period", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("responses", sa.JSON(), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=True),
        sa.Column("section_scores", sa.JSON(), nullable=True),
        sa.Column("flagged_issues", sa.JSON(), nullable=True),
        sa.Column("scored_at", sa.DateTime(timezone=True), nullable=True),
        _fk("submitted_by_id", "users"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        _fk("reviewed_by_id", "users"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_comments", sa.Text(), nullable=True),
        sa.Column("review_conditions", sa.JSON(), nullable=True),
        sa.Column("revision_requests", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_compliance_audits_mill_status", "compliance_audits", ["mill_id", "status"])
    op.create_index("idx_compliance_audits_auditor", "compliance_audits", ["auditor_id"])
    op.create_index("ix_compliance_audits_mill_id", "compliance_audits", ["mill_id"])
    op.create_index("ix_compliance_audits_template_id", "compliance_audits", ["template_id"])
    op.create_index("ix_compliance_audits_status", "compliance_audits", ["status"])

    op.create_table(
        "compliance_annotations",
        _id(),
        _fk("audit_id", "compliance_audits", nullable=False, ondelete="CASCADE"),
        sa.Column("item_id", sa.String(length=128), nullable=False),
        _fk("annotator_id", "users"),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("position", sa.JSON(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _fk("resolved_by_id", "users"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_compliance_annotations_audit_id", "compliance_annotations", ["audit_id"])

    op.create_table(
        "compliance_certificates",
        _id(),
        _fk("audit_id", "compliance_audits", nullable=False, ondelete="CASCADE"),
        _fk("mill_id", "mills", nullable=False, ondelete="CASCADE"),
        sa.Column("certificate_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        _fk("issued_by_id", "users"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_compliance_certificates_audit_id", "compliance_certificates", ["audit_id"])
    op.create_index("ix_compliance_certificates_mill_id", "compliance_certificates", ["mill_id"])

    # ------------------------------------------------------------------
    # Equipment, maintenance and IoT
    # ------------------------------------------------------------------
    op.create_table(
        "equipment",
        _id(),
        _fk("mill_id", "mills", nullable=False, ondelete="CASCADE"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("manufacturer", sa.String(length=128), nullable=True),
        sa.Column("model", sa.String(length=128), nullable=True),
        sa.Column("serial_number", sa.String(length=128), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("installation_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("calibration_interval", sa.String(length=32), nullable=True),
        sa.Column("last_calibration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_calibration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_calibration_offset", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_equipment_mill_status", "equipment", ["mill_id", "status"])
    op.create_index("ix_equipment_mill_id", "equipment", ["mill_id"])
    op.create_index("ix_equipment_serial_number", "equipment", ["serial_number"])

    op.create_table(
        "maintenance_tasks",
        _id(),
        _fk("mill_id", "mills", nullable=False, ondelete="CASCADE"),
        _fk("equipment_id", "equipment", nullable=False, ondelete="CASCADE"),
        _fk("assigned_to_id", "users"),
        _fk("created_by_id", "users"),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("estimated_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("parts_replaced", sa.JSON(), nullable=True),
        sa.Column("issues_found", sa.Text(), nullable=True),
        sa.Column("calibration_data", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_maintenance_tasks_mill_status", "maintenance_tasks", ["mill_id", "status"])
    op.create_index("idx_maintenance_tasks_equipment", "maintenance_tasks", ["equipment_id", "scheduled_date"])
    op.create_index("ix_maintenance_tasks_mill_id", "maintenance_tasks", ["mill_id"])
    op.create_index("ix_maintenance_tasks_status", "maintenance_tasks", ["status"])

    op.create_table(
        "iot_sensors",
        _id(),
        _fk("mill_id", "mills", nullable=False, ondelete="CASCADE"),
        _fk("equipment_id", "equipment"),
        sa.Column("device_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("sensor_type", sa.String(length=32), nullable=False),
        sa.Column("manufacturer", sa.String(length=128), nullable=True),
        sa.Column("model", sa.String(length=128), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("min_threshold", sa.Float(), nullable=True),
        sa.Column("max_threshold", sa.Float(), nullable=True),
        sa.Column("critical_min", sa.Float(), nullable=True),
        sa.Column("critical_max", sa.Float(), nullable=True),
        sa.Column("sampling_interval_seconds", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("calibration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_calibration_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_reading_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_iot_sensors_mill_status", "iot_sensors", ["mill_id", "status"])
    op.create_index("ix_iot_sensors_mill_id", "iot_sensors", ["mill_id"])
    op.create_index("ix_iot_sensors_equipment_id", "iot_sensors", ["equipment_id"])

    op.create_table(
        "sensor_readings",
        _id(),
        _fk("sensor_id", "iot_sensors", nullable=False, ondelete="CASCADE"),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("quality", sa.Float(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    op.create_index("idx_sensor_readings_sensor_time", "sensor_readings", ["sensor_id", "timestamp"])

    op.create_table(
        "sensor_alerts",
        _id(),
        _fk("sensor_id", "iot_sensors", nullable=False, ondelete="CASCADE"),
        _fk("equipment_id", "equipment"),
        _fk("mill_id", "mills", nullable=False, ondelete="CASCADE"),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("detected_value", sa.Float(), nullable=False),
        sa.Column("threshold", sa.Float(), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        _fk("acknowledged_by_id", "users"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _fk("resolved_by_id", "users"),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("preventive_measures", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_sensor_alerts_sensor_status", "sensor_alerts", ["sensor_id", "status", "severity"])
    op.create_index("idx_sensor_alerts_mill_status", "sensor_alerts", ["mill_id", "status"])

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    op.create_table(
        "training_courses",
        _id(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("difficulty", sa.String(length=16), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        _fk("created_by_id", "users"),
        *_timestamps(),
    )
    op.create_index("ix_training_courses_category", "training_courses", ["category"])
    op.create_index("ix_training_courses_is_published", "training_courses", ["is_published"])

    op.create_table(
        "training_progress",
        _id(),
        _fk("user_id", "users", nullable=False, ondelete="CASCADE"),
        _fk("course_id", "training_courses", nullable=False, ondelete="CASCADE"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("progress", sa.Float(), nullable=False, server_default="0"),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("certificate_number", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "course_id", name="uq_training_progress_user_course"),
    )
    op.create_index("idx_training_progress_user_status", "training_progress", ["user_id", "status"])

    op.create_table(
        "training_certificates",
        _id(),
        _fk("user_id", "users", nullable=False, ondelete="CASCADE"),
        _fk("course_id", "training_courses", nullable=False, ondelete="CASCADE"),
        sa.Column("certificate_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("verification_code", sa.String(length=32), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "course_id", name="uq_training_certificate_user_course"),
    )
    op.create_index("ix_training_certificates_user_id", "training_certificates", ["user_id"])
    op.create_index(
        "ix_training_certificates_verification_code",
        "training_certificates",
        ["verification_code"],
        unique=True,
    )

    # ------------------------------------------------------------------
    # Procurement
    # ------------------------------------------------------------------
    op.create_table(
        "rfps",
        _id(),
        sa.Column("reference_number", sa.String(length=32), nullable=False),
        _fk("buyer_id", "users", nullable=False, ondelete="RESTRICT"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("commodity", sa.String(length=32), nullable=False),
        sa.Column("total_volume", sa.Float(), nullable=False),
        sa.Column("unit_packaging", sa.String(length=16), nullable=False),
        sa.Column("quality_specs", sa.JSON(), nullable=True),
        sa.Column("delivery_locations", sa.JSON(), nullable=False),
        sa.Column("max_unit_price", sa.Float(), nullable=True),
        sa.Column("total_budget", sa.Float(), nullable=True),
        sa.Column("payment_terms", sa.String(length=64), nullable=True),
        sa.Column("bid_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("estimated_award_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("visibility", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("awarded_bid_id", sa.String(length=36), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_rfps_reference_number", "rfps", ["reference_number"], unique=True)
    op.create_index("ix_rfps_buyer_id", "rfps", ["buyer_id"])
    op.create_index("idx_rfps_status_visibility", "rfps", ["status", "visibility"])

    op.create_table(
        "bids",
        _id(),
        _fk("rfp_id", "rfps", nullable=False, ondelete="CASCADE"),
        _fk("mill_id", "mills", nullable=False, ondelete="CASCADE"),
        _fk("created_by_id", "users"),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("delivery_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("additional_costs", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_product_cost", sa.Float(), nullable=False),
        sa.Column("total_bid_amount", sa.Float(), nullable=False),
        sa.Column("price_validity_days", sa.Integer(), nullable=False),
        sa.Column("payment_terms", sa.String(length=64), nullable=True),
        sa.Column("lead_time_days", sa.Integer(), nullable=True),
        sa.Column("delivery_method", sa.String(length=16), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_bids_rfp_mill", "bids", ["rfp_id", "mill_id"])
    op.create_index("ix_bids_mill_id", "bids", ["mill_id"])
    op.create_index("ix_bids_status", "bids", ["status"])

    op.create_table(
        "purchase_orders",
        _id(),
        sa.Column("po_number", sa.String(length=32), nullable=False),
        _fk("rfp_id", "rfps", nullable=False, ondelete="RESTRICT"),
        _fk("bid_id", "bids", nullable=False, ondelete="RESTRICT"),
        _fk("buyer_id", "users", nullable=False, ondelete="RESTRICT"),
        _fk("mill_id", "mills", nullable=False, ondelete="RESTRICT"),
        sa.Column("product_specs", sa.JSON(), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("payment_terms", sa.String(length=64), nullable=False, server_default="NET_30"),
        sa.Column("status", sa.String(length=16), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_purchase_orders_po_number", "purchase_orders", ["po_number"], unique=True)
    op.create_index("ix_purchase_orders_buyer_id", "purchase_orders", ["buyer_id"])
    op.create_index("ix_purchase_orders_mill_id", "purchase_orders", ["mill_id"])

    # ------------------------------------------------------------------
    # Logistics
    # ------------------------------------------------------------------
    op.create_table(
        "delivery_trips",
        _id(),
        sa.Column("trip_number", sa.String(length=32), nullable=False),
        _fk("mill_id", "mills"),
        _fk("purchase_order_id", "purchase_orders"),
        _fk("driver_id", "users", nullable=False, ondelete="RESTRICT"),
        _fk("created_by_id", "users"),
        sa.Column("vehicle_info", sa.JSON(), nullable=True),
        sa.Column("orders", sa.JSON(), nullable=False),
        sa.Column("delivery_sequence", sa.JSON(), nullable=False),
        sa.Column("stops", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_stops", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_location", sa.JSON(), nullable=True),
        sa.Column("total_distance_km", sa.Float(), nullable=True),
        sa.Column("avg_speed_kmh", sa.Float(), nullable=True),
        sa.Column("fuel_used", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("issues", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_delivery_trips_trip_number", "delivery_trips", ["trip_number"], unique=True)
    op.create_index("ix_delivery_trips_mill_id", "delivery_trips", ["mill_id"])
    op.create_index("ix_delivery_trips_purchase_order_id", "delivery_trips", ["purchase_order_id"])
    op.create_index("idx_delivery_trips_driver_status", "delivery_trips", ["driver_id", "status"])

    op.create_table(
        "trip_tracking",
        _id(),
        _fk("trip_id", "delivery_trips", nullable=False, ondelete="CASCADE"),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("heading", sa.Float(), nullable=True),
        sa.Column("altitude", sa.Float(), nullable=True),
        sa.Column("battery_level", sa.Float(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    op.create_index("idx_trip_tracking_trip_time", "trip_tracking", ["trip_id", "recorded_at"])


def downgrade() -> None:
    for table in (
        "trip_tracking",
        "delivery_trips",
        "purchase_orders",
        "bids",
        "rfps",
        "training_certificates",
        "training_progress",
        "training_courses",
        "sensor_alerts",
        "sensor_readings",
        "iot_sensors",
        "maintenance_tasks",
        "equipment",
        "compliance_certificates",
        "compliance_annotations",
        "compliance_audits",
        "compliance_templates",
        "alerts",
        "notifications",
        "audit_logs",
        "users",
        "mills",
    ):
        op.drop_table(table)
