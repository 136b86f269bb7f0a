"""
Central constants for the training center dashboard.
"""
from __future__ import annotations

# Application roles (a user may hold several)
ROLE_ADMIN = "admin"
ROLE_SECRETARY = "secretary"
ROLE_TRAINER = "trainer"
ROLE_FINANCE = "finance"
ROLE_STUDENT = "student"
ROLE_IT = "it"

ROLES = (ROLE_ADMIN, ROLE_SECRETARY, ROLE_TRAINER, ROLE_FINANCE, ROLE_STUDENT, ROLE_IT)
STAFF_ROLES = frozenset({ROLE_ADMIN, ROLE_SECRETARY, ROLE_TRAINER, ROLE_FINANCE, ROLE_IT})

ROLE_LABELS = {
    ROLE_ADMIN: "Administrator",
    ROLE_SECRETARY: "Secretary",
    ROLE_TRAINER: "Trainer",
    ROLE_FINANCE: "Finance",
    ROLE_STUDENT: "Student",
    ROLE_IT: "IT",
}

# Student levels and class shifts
LEVELS = ("L3", "L4", "L5")
SHIFTS = ("morning", "afternoon")

# Request review states (leave requests, salary advances)
REVIEW_PENDING = "pending"
REVIEW_APPROVED = "approved"
REVIEW_REJECTED = "rejected"
REVIEW_STATUSES = (REVIEW_PENDING, REVIEW_APPROVED, REVIEW_REJECTED)
