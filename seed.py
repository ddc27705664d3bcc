from contentgate.auth import get_password_hash
from contentgate.database import SessionLocal, engine, Base
from contentgate.engine import WorkflowRegistry
from contentgate.models import ApprovalWorkflow, User
from contentgate.schemas.workflow import WorkflowDefinition

ORGANIZATION_ID = "org_demo"

# Create tables
Base.metadata.create_all(bind=engine)

db = SessionLocal()

# Demo reviewers; usernames are the identities workflows assign to
users = [
    ("sam@example.com", "sam", "Sam Submitter", ["creator"]),
    ("casey@example.com", "casey", "Casey Content", ["content_manager"]),
    ("morgan@example.com", "morgan", "Morgan Marketing", ["marketing_director"]),
    ("alex@example.com", "alex", "Alex Admin", ["admin", "content_manager"]),
]
created_users = 0
for email, username, display_name, roles in users:
    if db.query(User).filter(User.username == username).first():
        continue
    db.add(User(
        email=email,
        username=username,
        display_name=display_name,
        hashed_password=get_password_hash("changeme123"),
        organization_id=ORGANIZATION_ID,
        roles=roles,
    ))
    created_users += 1
db.commit()

standard_review = WorkflowDefinition.model_validate({
    "organization_id": ORGANIZATION_ID,
    "name": "Standard Content Review",
    "description": "Standard review process for all content",
    "steps": [
        {
            "id": "step_auto_check",
            "name": "Automated Checks",
            "type": "automated_check",
            "order": 1,
            "criteria": {
                "brand_safety": {"required": True, "threshold": 0.8, "auto_reject": True},
                "content_quality": {"required": True, "check_spelling": True, "check_grammar": True, "check_readability": True},
                "compliance": {"required": True, "check_legal": True, "check_industry_rules": True},
                "platform_optimization": {"required": True, "check_character_limits": True, "check_hashtags": True, "check_formatting": True},
            },
            "auto_advance": True,
        },
        {
            "id": "step_content_review",
            "name": "Content Review",
            "type": "review",
            "order": 2,
            "assignees": [{"type": "role", "id": "content_manager", "name": "Content Manager"}],
            "timeout": {"hours": 24, "action": "notify"},
        },
        {
            "id": "step_final_approval",
            "name": "Final Approval",
            "type": "final_approval",
            "order": 3,
            "assignees": [{"type": "role", "id": "marketing_director", "name": "Marketing Director"}],
        },
    ],
    "rules": {
        "auto_approval_conditions": {
            "enabled": True,
            "conditions": [
                {"type": "brand_safety_score", "operator": "gte", "value": 0.9},
                {"type": "content_template", "operator": "eq", "value": "approved_template"},
            ],
            "requires_all": True,
        },
        "notification_settings": {"channels": ["email", "webhook"]},
    },
})

existing = db.query(ApprovalWorkflow).filter(
    ApprovalWorkflow.organization_id == ORGANIZATION_ID,
    ApprovalWorkflow.name == standard_review.name,
).first()
workflow = existing or WorkflowRegistry(db).create(standard_review, created_by="alex")

print("Database seeded successfully!")
print(f"  - {created_users} users")
print(f"  - Workflow '{workflow.name}' (id={workflow.id}, version={workflow.version})")

db.close()
