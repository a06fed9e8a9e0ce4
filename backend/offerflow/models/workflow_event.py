from sqlalchemy import Column, ForeignKey, Text
from sqlalchemy.orm import relationship
from offerflow.database import Base


class WorkflowEvent(Base):
    __tablename__ = "workflow_events"

    id = Column(Text, primary_key=True)
    workflow_id = Column(Text, ForeignKey("offer_workflows.id"), nullable=False)
    event_type = Column(Text, nullable=False)
    step = Column(Text)
    notes = Column(Text)
    actor_id = Column(Text)
    occurred_at = Column(Text, nullable=False)

    workflow = relationship("OfferWorkflow", back_populates="events")
