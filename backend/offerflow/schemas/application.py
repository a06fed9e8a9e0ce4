from pydantic import BaseModel


class ApplicationContext(BaseModel):
    """Candidate and job data resolved for one job application."""

    application_id: str
    application_status: str
    job_id: str
    job_title: str
    job_location: str | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    currency: str | None = None
    job_created_by: str
    candidate_id: str
    first_name: str
    last_name: str
    email: str | None = None
    expected_salary: int | None = None
    experience_years: int | None = None
    current_location: str | None = None

    @property
    def candidate_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
