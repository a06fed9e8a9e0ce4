from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from offerflow.database import Base
from offerflow.utils.timestamps import utc_now


class JobPosting(Base):
    __tablename__ = "job_postings"

    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    location = Column(Text)
    salary_min = Column(Integer)
    salary_max = Column(Integer)
    currency = Column(Text, default="USD")
    created_by = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False, default=utc_now)

    applications = relationship("JobApplication", back_populates="job")


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(Text, primary_key=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    email = Column(Text)
    expected_salary = Column(Integer)
    experience_years = Column(Integer)
    current_location = Column(Text)

    applications = relationship("JobApplication", back_populates="candidate")


class JobApplication(Base):
    __tablename__ = "job_applications"

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey("job_postings.id"), nullable=False)
    candidate_id = Column(Text, ForeignKey("candidates.id"), nullable=False)
    status = Column(Text, nullable=False, default="applied")
    applied_at = Column(Text, nullable=False, default=utc_now)

    job = relationship("JobPosting", back_populates="applications")
    candidate = relationship("Candidate", back_populates="applications")
