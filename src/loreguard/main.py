"""loreguard CLI 入口：背景故事一致性分析。"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from loreguard.config.settings import AnalysisConfig, load_config
from loreguard.errors import ValidationError
from loreguard.graph.pipeline import AnalysisPipeline
from loreguard.models.job import DocumentInput, JobStatus, LogLevel, ProcessingLog
from loreguard.state.job import AnalysisJob

console = Console()
logger = logging.getLogger("loreguard")

_LEVEL_STYLES = {
    LogLevel.INFO: "white",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red",
}


def _read_document(path: str) -> DocumentInput:
    p = Path(path)
    return DocumentInput(name=p.name, content=p.read_text(encoding="utf-8"))


def _print_log(entry: ProcessingLog) -> None:
    style = _LEVEL_STYLES.get(entry.level, "white")
    console.print(
        f"[dim]{entry.timestamp:%H:%M:%S}[/dim] [cyan]{entry.phase:<10}[/cyan] "
        f"[{style}]{escape(entry.message)}[/{style}]"
    )


def _apply_env_overrides(config: AnalysisConfig) -> AnalysisConfig:
    """可通过环境变量覆盖模型配置。"""
    config.model.model_name = os.environ.get("LOREGUARD_MODEL", config.model.model_name)
    config.model.provider = os.environ.get("LOREGUARD_PROVIDER", config.model.provider)
    return config


def _print_result(job: AnalysisJob) -> None:
    result = job.result
    if result is None:
        return

    verdict = "[green]CONSISTENT (1)[/green]" if result.is_consistent else "[red]CONTRADICTED (0)[/red]"
    console.print(
        Panel(
            f"{verdict}  置信度 {result.overall_confidence:.2f}\n\n{escape(result.rationale)}",
            title=f"故事 {result.story_id} · Track {result.track.value}",
        )
    )

    if result.claims:
        claims_table = Table(title="论断")
        claims_table.add_column("id")
        claims_table.add_column("论断")
        claims_table.add_column("状态")
        claims_table.add_column("置信度", justify="right")
        claims_table.add_column("证据", justify="right")
        for claim in result.claims:
            claims_table.add_row(
                claim.id,
                escape(claim.text),
                claim.status.value,
                f"{claim.confidence:.2f}",
                str(len(claim.evidence)),
            )
        console.print(claims_table)

    constraint_table = Table(title="约束分析")
    constraint_table.add_column("维度")
    constraint_table.add_column("状态")
    constraint_table.add_column("说明")
    for constraint in result.constraint_analysis:
        constraint_table.add_row(
            constraint.constraint_type.value,
            constraint.status.value,
            escape(constraint.description),
        )
    console.print(constraint_table)

    if job.metrics:
        m = job.metrics
        console.print(
            f"[dim]示意指标（非真实评估）: accuracy={m.accuracy:.3f} precision={m.precision:.3f} "
            f"recall={m.recall:.3f} f1={m.f1_score:.3f}[/dim]"
        )


def cmd_analyze(args: argparse.Namespace) -> int:
    """执行一次一致性分析。"""
    config = _apply_env_overrides(load_config(args.config))

    try:
        story = _read_document(args.story)
        backstory = _read_document(args.backstory)
    except OSError as e:
        console.print(f"[red]读取输入文件失败: {e}[/red]")
        return 2

    console.print(f"\n初始化模型: [cyan]{config.model.provider}:{config.model.model_name}[/cyan]")
    pipeline = AnalysisPipeline(config)

    try:
        job = asyncio.run(
            pipeline.run(
                story,
                backstory,
                track=args.track,
                story_id=args.story_id,
                on_log=_print_log,
            )
        )
    except ValidationError as e:
        console.print(f"[red]输入无效: {e}[/red]")
        return 2

    if job.status is JobStatus.COMPLETE:
        _print_result(job)
    else:
        console.print(f"[red]分析失败: {job.error}[/red]")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(job.snapshot().to_wire(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        console.print(f"报告已写入: [cyan]{output_path}[/cyan]")

    return 0 if job.status is JobStatus.COMPLETE else 1


def main() -> None:
    """CLI 主入口。"""
    from dotenv import load_dotenv
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="loreguard",
        description="loreguard - 背景故事与长篇叙事的一致性分析",
    )
    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    analyze_parser = subparsers.add_parser("analyze", help="分析背景故事是否与叙事一致")
    analyze_parser.add_argument("story", help="故事正文文件路径（.txt）")
    analyze_parser.add_argument("backstory", help="背景故事文件路径（.txt）")
    analyze_parser.add_argument(
        "--track", choices=["A", "B"], default="A", help="分析模式（默认: A）"
    )
    analyze_parser.add_argument(
        "--story-id", default=None, help="故事 id（默认取故事文件名）"
    )
    analyze_parser.add_argument(
        "--config", "-c", default=None, help="YAML 配置文件路径"
    )
    analyze_parser.add_argument(
        "--output", "-o", default="", help="将任务快照写入 JSON 文件"
    )
    analyze_parser.add_argument(
        "--verbose", "-v", action="store_true", help="详细日志输出"
    )

    args = parser.parse_args()

    # 配置日志
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
    )

    if args.command == "analyze":
        sys.exit(cmd_analyze(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
