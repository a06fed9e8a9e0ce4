from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from offerflow.database import Base


class OfferWorkflow(Base):
    __tablename__ = "offer_workflows"

    id = Column(Text, primary_key=True)
    application_id = Column(Text, ForeignKey("job_applications.id"), nullable=False)
    current_step = Column(Text, nullable=False, default="background_check")
    status = Column(Text, nullable=False, default="pending")
    version = Column(Integer, nullable=False, default=1)
    created_by = Column(Text, nullable=False)

    background_check_request_id = Column(Text)
    background_check_status = Column(Text)
    background_check_result = Column(Text)  # JSON
    background_check_completed_at = Column(Text)

    offer_details = Column(Text)  # JSON
    offer_generated_at = Column(Text)

    hr_approval_comments = Column(Text)
    hr_approved_by = Column(Text)
    hr_approved_at = Column(Text)

    email_request_id = Column(Text)
    offer_letter_ref = Column(Text)
    sent_at = Column(Text)

    candidate_response = Column(Text)
    candidate_comment = Column(Text)
    candidate_response_at = Column(Text)

    completed_at = Column(Text)
    cancelled_at = Column(Text)
    cancel_reason = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    events = relationship("WorkflowEvent", back_populates="workflow", order_by="WorkflowEvent.occurred_at")
