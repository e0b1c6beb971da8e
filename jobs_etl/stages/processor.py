"""Processor stage: LLM classification and embeddings for job details."""

import asyncio
from typing import Any

import structlog

from jobs_etl.clients.openai_client import OpenAIClient
from jobs_etl.config import get_settings
from jobs_etl.models.enums import CapabilityLevel
from jobs_etl.models.job import (
    CapabilityAnalysis,
    Embedding,
    FrameworkCapability,
    JobDetails,
    JobEmbeddings,
    ProcessedCapability,
    ProcessedJob,
    ProcessingMetadata,
    TaxonomyAnalysis,
)
from jobs_etl.stages.base import TransformStage

logger = structlog.get_logger()

CAPABILITY_PROMPT = """You analyze NSW Government job adverts against the NSW Public Sector Capability Framework.

Framework capabilities (id: name - description):
{framework}

Identify the capabilities the role requires. Only use ids from the list above.
Respond with a JSON object:
{{
  "capabilities": [
    {{
      "id": "capability id from the list",
      "name": "capability name",
      "level": "one of: foundational, intermediate, adept, advanced, highly advanced",
      "description": "how the capability applies to this role",
      "relevance": 0.0
    }}
  ],
  "occupational_group": "most relevant occupational group",
  "focus_area": "main focus area or specialisation"
}}"""

TAXONOMY_PROMPT = """You classify job adverts into a skills taxonomy.

Respond with a JSON object:
{
  "technical_skills": ["specific technical or domain skills"],
  "soft_skills": ["interpersonal and behavioural skills"],
  "taxonomy_groups": ["broad job families the role belongs to"]
}"""


def job_content(job: JobDetails) -> str:
    """Flatten a job advert into the text sent for analysis."""
    parts = [
        f"Job Title: {job.title}",
        f"Agency: {job.agency}",
        f"Job Type: {job.job_type}",
        f"Location: {job.location}",
        "Description:",
        job.description,
        "Responsibilities:",
        *(f"- {r}" for r in job.responsibilities),
        "Requirements:",
        *(f"- {r}" for r in job.requirements),
        "Notes:",
        *(f"- {n}" for n in job.notes),
        "About Us:",
        job.about_us,
    ]
    documents = [doc for doc in job.documents if doc.content]
    if documents:
        parts.append("Role Documents:")
        parts.extend(f"{doc.title or doc.url}:\n{doc.content}" for doc in documents)
    return "\n\n".join(part for part in parts if part)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _optional_string(value: Any) -> str | None:
    # Older prompts answered with lists of groups/areas
    if isinstance(value, list):
        value = value[0] if value else None
    if not value:
        return None
    return str(value).strip() or None


class ProcessorService(TransformStage):
    """Classifies jobs against the capability framework and embeds them.

    Args:
        client: OpenAI-compatible client for chat and embeddings
        storage: Provides ``get_framework_capabilities`` and
            ``store_capability_embeddings``
        settings: Application settings
    """

    name = "processor"

    def __init__(self, client: OpenAIClient, storage, settings=None):
        self.client = client
        self.storage = storage
        self.settings = settings or get_settings()
        self._framework: dict[str, FrameworkCapability] = {}
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrency)

    @property
    def framework(self) -> list[FrameworkCapability]:
        return list(self._framework.values())

    async def initialize(self) -> None:
        """Load the capability framework, embedding capabilities that lack a vector."""
        capabilities = await self.storage.get_framework_capabilities()
        if not capabilities:
            logger.warning("capability_framework_empty")

        missing = [cap for cap in capabilities if not cap.embedding]
        if missing:
            logger.info("embedding_framework_capabilities", count=len(missing))
            vectors = await self.client.embed_batch([cap.description or cap.name for cap in missing])
            for cap, vector in zip(missing, vectors):
                cap.embedding = vector
            await self.storage.store_capability_embeddings(missing)

        self._framework = {cap.id: cap for cap in capabilities}
        logger.info("capability_framework_loaded", count=len(self._framework))

    def _match_capability(self, item: dict[str, Any]) -> FrameworkCapability | None:
        cap_id = str(item.get("id", "")).strip()
        if cap_id in self._framework:
            return self._framework[cap_id]

        name = str(item.get("name", "")).strip().lower()
        for cap in self._framework.values():
            if cap.name.lower() == name:
                return cap
        return None

    async def analyze_capabilities(self, job: JobDetails) -> CapabilityAnalysis:
        """Ask the LLM which framework capabilities the job requires.

        Capabilities not present in the framework are discarded.
        """
        if not self._framework:
            raise RuntimeError("Capability framework not loaded. Call initialize() first.")

        framework = "\n".join(
            f"{cap.id}: {cap.name} - {cap.description}" for cap in self._framework.values()
        )
        data = await self.client.complete_json(
            CAPABILITY_PROMPT.format(framework=framework), job_content(job)
        )

        capabilities = []
        for item in data.get("capabilities") or []:
            if not isinstance(item, dict):
                continue
            cap = self._match_capability(item)
            if cap is None:
                logger.debug("unknown_capability_dropped", job_id=job.id, name=item.get("name"))
                continue

            try:
                level = CapabilityLevel(str(item.get("level", "")).lower())
            except ValueError:
                level = CapabilityLevel.INTERMEDIATE
            try:
                relevance = min(max(float(item.get("relevance", 0.0)), 0.0), 1.0)
            except (TypeError, ValueError):
                relevance = 0.0

            capabilities.append(
                ProcessedCapability(
                    id=cap.id,
                    name=cap.name,
                    level=level,
                    description=str(item.get("description") or cap.description),
                    relevance=relevance,
                )
            )

        return CapabilityAnalysis(
            capabilities=capabilities,
            occupational_group=_optional_string(
                data.get("occupational_group", data.get("occupationalGroups"))
            ),
            focus_area=_optional_string(data.get("focus_area", data.get("focusAreas"))),
        )

    async def analyze_taxonomy(self, job: JobDetails) -> TaxonomyAnalysis:
        """Ask the LLM for the job's skills and taxonomy groups."""
        data = await self.client.complete_json(TAXONOMY_PROMPT, job_content(job))
        return TaxonomyAnalysis(
            technical_skills=_string_list(data.get("technical_skills")),
            soft_skills=_string_list(data.get("soft_skills")),
            taxonomy_groups=_string_list(data.get("taxonomy_groups")),
        )

    def _capability_embedding(self, cap: ProcessedCapability) -> Embedding | None:
        framework_cap = self._framework.get(cap.id)
        if framework_cap is None or not framework_cap.embedding:
            return None
        return Embedding(
            vector=framework_cap.embedding,
            text=framework_cap.description,
            metadata={"capability_id": cap.id, "name": cap.name, "level": cap.level.value},
        )

    async def process_job(self, job: JobDetails) -> ProcessedJob | None:
        """Classify and embed one job. Any failure is logged and yields None."""
        try:
            capabilities, taxonomy = await asyncio.gather(
                self.analyze_capabilities(job),
                self.analyze_taxonomy(job),
            )

            skills = [
                *((skill, "technical") for skill in taxonomy.technical_skills),
                *((skill, "soft") for skill in taxonomy.soft_skills),
            ]
            job_text = job.description or job_content(job)
            vectors = await self.client.embed_batch([job_text] + [skill for skill, _ in skills])

            embeddings = JobEmbeddings(
                job=Embedding(
                    vector=vectors[0],
                    text=job_text,
                    metadata={"job_id": job.id, "title": job.title},
                ),
                capabilities=[self._capability_embedding(cap) for cap in capabilities.capabilities],
                skills=[
                    Embedding(vector=vector, text=skill, metadata={"category": category})
                    for (skill, category), vector in zip(skills, vectors[1:])
                ],
            )

            logger.info(
                "job_processed",
                job_id=job.id,
                capabilities=len(capabilities.capabilities),
                technical_skills=len(taxonomy.technical_skills),
                soft_skills=len(taxonomy.soft_skills),
                embeddings=len(embeddings.all_embeddings()),
            )

            return ProcessedJob(
                job_details=job,
                capabilities=capabilities,
                taxonomy=taxonomy,
                embeddings=embeddings,
                metadata=ProcessingMetadata(version=self.settings.processor_version),
            )

        except Exception as e:
            logger.error(
                "job_processing_failed",
                job_id=job.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def _process_bounded(self, job: JobDetails) -> ProcessedJob | None:
        async with self._semaphore:
            return await self.process_job(job)

    async def process_batch(self, jobs: list[JobDetails]) -> list[ProcessedJob | None]:
        results = await asyncio.gather(*(self._process_bounded(job) for job in jobs))

        succeeded = sum(1 for r in results if r is not None)
        logger.info(
            "process_batch_finished",
            total=len(jobs),
            succeeded=succeeded,
            failed=len(jobs) - succeeded,
        )
        return list(results)

    async def cleanup(self) -> None:
        await self.client.close()
