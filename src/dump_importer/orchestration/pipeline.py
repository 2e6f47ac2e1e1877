"""
Import pipeline: schema pass, conversion, schema application and data pass.

    Reader -> Parser -> SchemaBuilder (pass 1) -> SchemaConverter
           -> reset() -> Parser -> RowConverter -> BatchWriter (pass 2)

Two passes are needed because rows can only be converted once the whole
target schema is known, and that requires every DDL statement to have been
seen. import_dump() runs both passes over one reader and rewinds it in
between; create_schema() and import_data() run one pass each for callers
that drive the steps themselves.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from dump_importer.config.overrides import SchemaOverrides, load_schema_overrides
from dump_importer.config.settings import Settings, get_settings
from dump_importer.conversion.schema_converter import SchemaConverter
from dump_importer.dialects import SourceDialect, get_dialect
from dump_importer.domain.context import ConversionContext, Mode
from dump_importer.domain.ddl import render_schema_ddl
from dump_importer.domain.errors import ImportCancelledError, SchemaApplicationError
from dump_importer.io.reader import DumpSource, StatementReader
from dump_importer.io.target.base import SchemaApplier, TargetStore
from dump_importer.orchestration.report import ImportReport
from dump_importer.utils.logging import bind_context
from dump_importer.writer.batch_writer import BatchWriter, BatchWriterConfig, WriterStats
from dump_importer.writer.table_pool import TableWriterPool


def _schema_pass(
    reader: StatementReader,
    ctx: ConversionContext,
    applier: Optional[SchemaApplier],
    dialect: SourceDialect,
    settings: Settings,
    overrides: SchemaOverrides,
) -> List[str]:
    log = bind_context(source=reader.source.name, source_format=dialect.name)
    ctx.mode = Mode.SCHEMA
    log.info("pipeline.schema_pass_started")
    dialect.parse_dump(reader, ctx)
    log.info(
        "pipeline.schema_pass_completed",
        tables=len(ctx.source.tables),
        lines=reader.line_number,
        reparsed=ctx.stats.reparsed,
    )

    target = SchemaConverter(
        ctx,
        dialect,
        overrides=overrides,
        target_dialect=settings.TARGET_DIALECT,
        detect_interleaving=settings.DETECT_INTERLEAVING,
    ).convert()
    ddl = render_schema_ddl(target, settings.TARGET_DIALECT)

    if applier is not None:
        try:
            applier.apply_schema(target, ddl)
        except SchemaApplicationError:
            log.error("pipeline.schema_application_failed", statements=len(ddl))
            raise
        except Exception as e:
            log.error("pipeline.schema_application_failed", statements=len(ddl), error=str(e))
            raise SchemaApplicationError(f"Failed to apply target schema: {e}") from e
        log.info("pipeline.schema_applied", statements=len(ddl))
    return ddl


def _data_pass(
    reader: Optional[StatementReader],
    source: DumpSource,
    ctx: ConversionContext,
    store: TargetStore,
    dialect: SourceDialect,
    settings: Settings,
    parallel: bool,
) -> Tuple[WriterStats, bool]:
    """Run the data pass; returns writer statistics and whether it was cancelled."""
    log = bind_context(source=source.name, source_format=dialect.name)
    ctx.begin_data_pass()
    config = BatchWriterConfig.from_settings(settings)
    log.info("pipeline.data_pass_started", parallel=parallel)

    if parallel and source.reopenable:
        pool = TableWriterPool(
            source,
            dialect,
            ctx,
            store,
            config=config,
            max_workers=settings.MAX_WORKERS,
            progress_interval=settings.PROGRESS_INTERVAL,
        )
        try:
            stats = pool.run()
        except ImportCancelledError:
            log.warning("pipeline.data_pass_cancelled")
            return pool.stats, True
        log.info("pipeline.data_pass_completed", rows_written=stats.rows_written)
        return stats, False

    if parallel:
        log.warning("pipeline.parallel_unavailable", reason="source cannot be reopened")

    writer = BatchWriter(store, config, ctx.cancel_event)
    ctx.data_sink = writer.add_row
    own_reader = reader is None
    if reader is None:
        reader = StatementReader(source, settings.PROGRESS_INTERVAL)
    try:
        dialect.parse_dump(reader, ctx)
        writer.flush()
    except ImportCancelledError:
        writer.abandon()
        log.warning("pipeline.data_pass_cancelled", rows_written=writer.stats.rows_written)
        return writer.stats, True
    except BaseException:
        writer.abandon()
        raise
    finally:
        ctx.data_sink = None
        if own_reader:
            reader.close()
    log.info(
        "pipeline.data_pass_completed",
        rows_written=writer.stats.rows_written,
        batches=writer.stats.flushes,
        bad_rows=ctx.bad_rows.total,
    )
    return writer.stats, False


def create_schema(
    source: DumpSource,
    ctx: ConversionContext,
    applier: Optional[SchemaApplier],
    dialect: Optional[SourceDialect] = None,
    settings: Optional[Settings] = None,
    overrides: Optional[SchemaOverrides] = None,
) -> ImportReport:
    """Run the schema pass, convert the schema and apply it.

    Raises:
        UnsupportedDumpFormatError: If the configured source format is unknown
        DumpReadError / DumpParseError: If the dump cannot be read or parsed
        SchemaApplicationError: If the applier fails
    """
    settings = settings or get_settings()
    dialect = dialect or get_dialect(settings.SOURCE_FORMAT)
    if overrides is None:
        overrides = load_schema_overrides(settings.SCHEMA_OVERRIDES_FILE)
    start_time = datetime.now()
    with StatementReader(source, settings.PROGRESS_INTERVAL) as reader:
        ddl = _schema_pass(reader, ctx, applier, dialect, settings, overrides)
    return ImportReport.from_context(
        ctx, source.name, dialect.name, settings.TARGET_DIALECT, ddl=ddl, start_time=start_time
    )


def import_data(
    source: DumpSource,
    ctx: ConversionContext,
    store: TargetStore,
    dialect: Optional[SourceDialect] = None,
    settings: Optional[Settings] = None,
    parallel: bool = False,
) -> ImportReport:
    """Run the data pass against a context whose target schema is already built.

    Raises:
        ValueError: If the context has no target schema yet
        DumpReadError / DumpParseError: If the dump cannot be read or parsed
        BatchWriteError: If a batch cannot be written within the retry budget
    """
    if ctx.target is None:
        raise ValueError("import_data requires a converted target schema; run create_schema first")
    settings = settings or get_settings()
    dialect = dialect or get_dialect(settings.SOURCE_FORMAT)
    start_time = datetime.now()
    stats, cancelled = _data_pass(None, source, ctx, store, dialect, settings, parallel)
    return ImportReport.from_context(
        ctx,
        source.name,
        dialect.name,
        settings.TARGET_DIALECT,
        writer=stats,
        cancelled=cancelled,
        start_time=start_time,
    )


def import_dump(
    source: DumpSource,
    store: TargetStore,
    applier: Optional[SchemaApplier] = None,
    settings: Optional[Settings] = None,
    ctx: Optional[ConversionContext] = None,
    parallel: bool = False,
) -> ImportReport:
    """Import a whole dump: schema pass, schema application, rewind, data pass.

    When no applier is given and the store also implements apply_schema, the
    store applies the schema.
    """
    settings = settings or get_settings()
    dialect = get_dialect(settings.SOURCE_FORMAT)
    overrides = load_schema_overrides(settings.SCHEMA_OVERRIDES_FILE)
    ctx = ctx or ConversionContext(bad_row_sample_size=settings.BAD_ROW_SAMPLE_SIZE)
    if applier is None and hasattr(store, "apply_schema"):
        applier = store  # type: ignore[assignment]

    log = bind_context(run_id=uuid.uuid4().hex[:12], source=source.name, source_format=dialect.name)
    start_time = datetime.now()
    log.info("pipeline.import_started", target_dialect=settings.TARGET_DIALECT)

    with StatementReader(source, settings.PROGRESS_INTERVAL) as reader:
        ddl = _schema_pass(reader, ctx, applier, dialect, settings, overrides)
        use_pool = parallel and source.reopenable
        if not use_pool:
            reader.reset()
        stats, cancelled = _data_pass(
            None if use_pool else reader, source, ctx, store, dialect, settings, parallel
        )

    report = ImportReport.from_context(
        ctx,
        source.name,
        dialect.name,
        settings.TARGET_DIALECT,
        ddl=ddl,
        writer=stats,
        cancelled=cancelled,
        start_time=start_time,
    )
    log.info(
        "pipeline.import_completed",
        tables=len(report.tables),
        rows=report.total_rows,
        bad_rows=report.total_bad_rows,
        cancelled=cancelled,
        duration_seconds=round(report.duration_seconds, 3),
    )
    return report
