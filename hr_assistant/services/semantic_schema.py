"""Domain vocabulary for the HR/operations database.

Holds the table allow-list, the semantic schema handed to the SQL generation
prompt and the keyword sets used by the intent classifier.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Tuple


ALLOWED_TABLES: Tuple[str, ...] = (
    "activity_logs",
    "allowance_details",
    "allowance_items",
    "allowances",
    "attendance_device_info",
    "attendances",
    "bank_info",
    "configurations",
    "departments",
    "employee_allowances",
    "employee_dependent",
    "employee_documents",
    "employee_leaves",
    "employee_roles",
    "employee_salary_records",
    "employees",
    "employment_types",
    "leave_types",
    "permissions",
    "public_holidays",
    "relation_types",
    "requested_leaves",
    "role_permissions",
    "roles",
)


SEMANTIC_SCHEMA: Dict[str, Dict[str, object]] = {
    "employees": {
        "description": "Employees with personal, contact, employment and salary information",
        "columns": {
            "id": "Primary internal employee identifier",
            "attendance_device_id": "Biometric attendance machine ID",
            "employee_name": "Full name of the employee",
            "personal_contact_number": "Personal phone number",
            "emergency_contact_number": "Emergency contact number",
            "personal_email": "Personal email address",
            "employee_address": "Residential address",
            "office_email": "Official company email address",
            "department": "Department (JSON or id)",
            "designation": "Job title",
            "line_manager": "Reporting manager",
            "joining_date": "Date the employee joined",
            "exit_date": "Date the employee left",
            "current_salary": "Current salary amount",
            "employment_type": "Full-time, part-time or contract",
            "is_active": "Active flag",
        },
        "relations": {
            "attendances": "employees.attendance_device_id = attendances.attendance_device_id",
            "bank_info": "employees.id = bank_info.employee_id",
            "employee_leaves": "employees.id = employee_leaves.employee_id",
            "requested_leaves": "employees.id = requested_leaves.employee_id",
            "employee_allowances": "employees.id = employee_allowances.employee_id",
            "employee_salary_records": "employees.id = employee_salary_records.employee_id",
            "employee_dependent": "employees.id = employee_dependent.employee_id",
            "employee_documents": "employees.id = employee_documents.employee_id",
            "employee_roles": "employees.id = employee_roles.employee_id",
        },
    },
    "attendances": {
        "description": "Check-in and check-out records",
        "columns": {
            "id": "Attendance record ID",
            "employee_id": "Employee reference (often null)",
            "attendance_device_id": "Biometric device ID",
            "leave_type_id": "Leave type when on leave",
            "check_in": "Check-in time",
            "check_out": "Check-out time",
            "date": "Attendance date",
            "status": "present, absent or leave",
            "reason": "Reason for absence",
        },
        "relations": {
            "employees": "attendances.attendance_device_id = employees.attendance_device_id",
            "leave_types": "attendances.leave_type_id = leave_types.id",
        },
    },
    "employee_leaves": {
        "description": "Annual leave balance per employee and leave type",
        "columns": {
            "employee_id": "Employee reference",
            "leave_type_id": "Leave type identifier",
            "total_leaves": "Total leaves allocated",
            "remaining_leaves": "Remaining leaves",
            "year": "Leave year",
        },
        "relations": {
            "employees": "employee_leaves.employee_id = employees.id",
            "leave_types": "employee_leaves.leave_type_id = leave_types.id",
        },
    },
    "requested_leaves": {
        "description": "Leave requests submitted by employees",
        "columns": {
            "employee_id": "Employee requesting leave",
            "leave_type_id": "Leave category",
            "start_from": "Leave start date",
            "to_end": "Leave end date",
            "total_leaves": "Number of leave days",
            "status": "Pending, Approved or Rejected",
            "employee_reason": "Reason provided by the employee",
        },
    },
    "leave_types": {
        "description": "Leave categories offered by the company",
        "columns": {"leave_name": "Name of leave", "total_leaves": "Default total leaves"},
    },
    "employee_salary_records": {
        "description": "Salary changes and increments",
        "columns": {
            "employee_id": "Employee reference",
            "previous_salary": "Previous salary amount",
            "increment_amount": "Increment value",
        },
    },
    "employee_allowances": {
        "description": "Allowances assigned to employees",
        "columns": {
            "employee_id": "Employee reference",
            "allowance_type": "Type of allowance",
            "payment_type": "Payment frequency",
            "amount": "Allowance amount",
        },
    },
    "allowances": {
        "description": "Master list of allowance types",
        "columns": {"allowance_type": "Allowance category name"},
    },
    "allowance_items": {
        "description": "Allowance items and descriptions",
        "columns": {
            "allowance_item": "Item name",
            "allowance_description": "Item description",
            "allowance_amount": "Default amount",
        },
    },
    "allowance_details": {
        "description": "Mapping of allowance types and items",
        "columns": {
            "allowance_type_id": "Allowance type reference",
            "allowance_item_id": "Allowance item reference",
            "allowance_amount": "Allowance amount",
        },
    },
    "departments": {
        "description": "Company departments",
        "columns": {"department_name": "Department name", "description": "Description"},
    },
    "employment_types": {
        "description": "Employment categories",
        "columns": {"employee_type": "Employment category name"},
    },
    "roles": {
        "description": "Roles defined in the system",
        "columns": {
            "role_name": "Role name",
            "description": "Role description",
            "permission_ids": "JSON array of permission ids",
        },
    },
    "permissions": {
        "description": "System permissions",
        "columns": {"module": "System module", "permission": "Permission name", "route": "Route", "method": "HTTP method"},
    },
    "employee_roles": {
        "description": "Role assignments for employees",
        "columns": {"employee_id": "Employee reference", "role_id": "Role reference"},
    },
    "role_permissions": {
        "description": "Permissions assigned directly to employees",
        "columns": {"employee_id": "Employee reference", "permission_id": "Permission reference"},
    },
    "activity_logs": {
        "description": "Audit trail of system activities",
        "columns": {
            "user_id": "User performing the action",
            "module": "Module name",
            "action": "Performed action",
            "record_id": "Affected record",
            "created_at": "Action timestamp",
        },
    },
    "public_holidays": {
        "description": "Official public holidays",
        "columns": {"holiday_date": "Holiday date", "name": "Holiday name"},
    },
}


JOIN_GUIDANCE = """Join rules:
- Primary link: attendances.attendance_device_id = employees.attendance_device_id (employee_id is often null in attendances)
- Optional: employee_leaves.employee_id = employees.id (only if needed)
- Optional: attendances.attendance_device_id = attendance_device_info.id
- For leave category names: employee_leaves.leave_type_id = leave_types.id
- For roles/permissions:
  - employee_roles.employee_id = employees.id
  - employee_roles.role_id = roles.id
  - roles.permission_ids is a JSON array of permission ids; join permissions with json_contains(roles.permission_ids, CAST(permissions.id AS VARCHAR))
  - role_permissions.employee_id = employees.id and role_permissions.permission_id = permissions.id (there is no role_id column there)"""


COLUMN_HINTS = """Column hints (use real columns only):
- employees: id, employee_name, attendance_device_id, personal_contact_number, emergency_contact_number, personal_email, employee_address, department, designation, office_email, joining_date, current_salary, is_active
- attendances: id, employee_id (often null), attendance_device_id, check_in, check_out, date, status
- attendance_device_info: id, name, ip, port, is_active
- departments: id, department_name, description, is_active
- employee_leaves: id, employee_id, leave_type_id, total_leaves, year, remaining_leaves, is_active
- leave_types: id, leave_name, total_leaves, is_active
- employee_roles: id, employee_id, role_id, is_active
- roles: id, role_name, description, permission_ids, is_active
- role_permissions: id, employee_id, permission_id, is_active
- permissions: id, module, permission, route, api_endpoint, method, is_active"""


ENTITY_KEYWORDS: FrozenSet[str] = frozenset({
    "employee", "employees", "staff", "staff member", "team member", "personnel",
    "worker", "employee record", "employee details",
    "attendance", "attendances", "check in", "check-in", "check out", "check-out",
    "punch", "clock in", "clock out", "working hours", "presence",
    "attendance device", "biometric device", "device id", "attendance device id",
    "department", "departments", "division",
    "leave", "leaves", "leave balance", "remaining leaves", "total leaves",
    "time off", "paid leave", "unpaid leave", "annual leave", "sick leave",
    "casual leave", "leave type", "leave category", "leave categories",
    "salary", "salaries", "current salary", "previous salary", "compensation",
    "increment", "salary increment",
    "allowance", "allowances", "benefits", "extra pay",
    "role", "roles", "employee role", "user role",
    "permission", "permissions", "access rights",
    "public holiday", "public holidays", "holiday", "holidays",
    "bank info", "bank account", "salary account",
    "employee document", "employee documents",
    "dependent", "dependents", "family member",
    "employment type", "employment types", "full time", "part time", "intern",
    "activity log", "activity logs", "audit log", "audit trail", "system log",
    "user activity",
})

FIELD_KEYWORDS: FrozenSet[str] = frozenset({
    "employee id", "employee name", "full name",
    "contact number", "phone", "phone number", "mobile", "mobile number",
    "emergency contact", "office email", "personal email",
    "employee address", "designation", "job title",
    "joining date", "join date", "exit date", "resignation date",
    "increment amount", "salary amount",
    "attendance date", "check in time", "check out time",
    "leave year", "remaining leave", "total leave",
    "allowance amount", "payment type",
    "api endpoint",
})

# Structured-data vocabulary: entity names and field names.
STRUCTURED_KEYWORDS: FrozenSet[str] = ENTITY_KEYWORDS | FIELD_KEYWORDS

ACTION_KEYWORDS: FrozenSet[str] = frozenset({
    "list", "show", "get", "fetch", "display", "give", "find", "view", "retrieve",
    "count", "how many", "total number", "number of",
    "latest", "recent", "remaining", "balance",
})

DOCUMENT_KEYWORDS: FrozenSet[str] = frozenset({
    "policy", "policies", "company policy", "refund",
    "procedure", "procedures", "process", "workflow", "guidelines", "handbook",
    "onboarding", "offboarding",
    "product", "products", "service", "services",
    "company info", "about company", "organization info",
    "founder", "ceo", "mission", "vision",
})

GREETING_PATTERNS: Tuple[str, ...] = (
    r"^(hi|hello|hey|salam|good\s+(morning|evening|afternoon))\b",
    r"\b(how are you|thank you|thanks|what's up|whats up|bye|goodbye)\b",
)

PERSON_LOOKUP_PATTERNS: Tuple[str, ...] = (
    r"\bwho\s+is\s+\S+",
    r"\btell\s+me\s+about\s+\S+",
)


def resolve_allowed_tables(override: Tuple[str, ...] = ()) -> FrozenSet[str]:
    """Return the configured allow-list, falling back to the built-in tables."""
    if override:
        return frozenset(table.strip().lower() for table in override if table.strip())
    return frozenset(ALLOWED_TABLES)
