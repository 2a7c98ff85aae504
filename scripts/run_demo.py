import argparse
import json
from pathlib import Path

from app.core.config import get_settings
from app.services.checklist_service import ChecklistService
from app.services.enhancement_writer import generate_enhancements
from app.services.llm import build_llm_provider
from app.services.pipeline_rules import build_pipeline_stats
from app.services.pipeline_types import EnhancementRequestItem, PipelineData
from app.services.session_store import FileSessionRepository

SAMPLE_PIPELINE = {
    "pendingOffers": [{"applicationId": 101, "candidateName": "Jane Doe", "daysSinceSent": 5}],
    "stuckByStage": {"2": {"count": 4, "maxDays": 9, "stageName": "Screening"}},
    "unreviewedCount": 7,
    "oldestUnreviewedHours": 60,
    "shortlistedNoInterview": 2,
    "jobsWithLowPipeline": [{"jobId": 12, "title": "Data Engineer", "activeCount": 1}],
    "jdIssues": [{"jobId": 14, "title": "Product Designer", "issue": "missing salary range"}],
    "staleJobs": [{"jobId": 9, "title": "Office Manager", "daysSinceActivity": 41}],
    "candidatesNeedingUpdate": 3,
}


def main() -> None:
    parser = argparse.ArgumentParser(description="Print the pipeline action checklist for a pipeline JSON file.")
    parser.add_argument("pipeline_file", nargs="?", help="PipelineData JSON (camelCase). Uses a sample when omitted.")
    parser.add_argument("--user-id", type=int, default=1)
    parser.add_argument("--role", default="recruiter")
    parser.add_argument("--health-score", type=float, default=62)
    parser.add_argument("--store-dir", default=".checklist-sessions")
    parser.add_argument("--enhance", action="store_true", help="Describe items with the configured LLM provider")
    args = parser.parse_args()

    raw = json.loads(Path(args.pipeline_file).read_text()) if args.pipeline_file else SAMPLE_PIPELINE
    data = PipelineData.model_validate(raw)

    service = ChecklistService(FileSessionRepository(Path(args.store_dir)))
    view = service.load_or_create(args.user_id, args.role, data, health_score=args.health_score)
    items = view.session.items

    if args.enhance and items:
        result = generate_enhancements(
            [
                EnhancementRequestItem(id=item.id, title=item.title, priority=item.priority, category=item.category)
                for item in items
            ],
            build_pipeline_stats(data, args.health_score),
            build_llm_provider(get_settings()),
        )
        descriptions = {enhancement.item_id: enhancement.description for enhancement in result.enhancements}
    else:
        descriptions = {}

    print(f"Checklist session {view.session.id} ({len(items)} items, {view.progress}% complete)")
    for label, group in (
        ("URGENT", view.grouped.urgent),
        ("IMPORTANT", view.grouped.important),
        ("MAINTENANCE", view.grouped.maintenance),
    ):
        if not group:
            continue
        print(f"\n{label}")
        for item in group:
            marker = "x" if item.id in view.session.completed_ids else " "
            print(f"  [{marker}] {item.title}  ->  {item.link}")
            if item.id in descriptions:
                print(f"        {descriptions[item.id]}")

    print(
        f"\nProjected health score: {view.projected_score:g} "
        f"(+{view.health_impact.projected_improvement})"
    )
    print(f"Reanalyze: {'allowed' if view.reanalyze.allowed else 'locked'} - {view.reanalyze.reason}")


if __name__ == "__main__":
    main()
