# src/sluice/engine/actions/builtin.py
"""Built-in Action types.

    copy           one input -> one output, optional chain of DataFrame transformers
    custom         N inputs -> M outputs through a chain of transformers over a dict of DataFrames
    file_transfer  copy partition files unchanged between file based DataObjects

Transformers are plain callables, referenced in configuration as
``package.module:function``. Transformer options are passed as keyword
arguments. A single ``transformer`` runs before the ``transformers`` list.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING, Any, ClassVar, cast

import pandas as pd
from pydantic import Field

from sluice.contracts import ConfigurationError, DataFrameSubFeed, ExecutionPhase, FileSubFeed, SubFeed, WriteResult
from sluice.engine.actions.multi import SubFeedsAction
from sluice.engine.actions.single import SubFeedAction
from sluice.engine.transformers import TransformerStep, apply_frame_chain, apply_frames_chain
from sluice.plugins.config_base import PluginConfig
from sluice.plugins.protocols import CanHandleFilesProtocol

if TYPE_CHECKING:
    from sluice.engine.context import ActionPipelineContext
    from sluice.plugins.protocols import CanReadProtocol, CanWriteProtocol

type DataFrameTransformer = Callable[..., pd.DataFrame]
type DataFramesTransformer = Callable[..., Mapping[str, pd.DataFrame]]


def _chain(
    transformer: Callable[..., Any] | None,
    transformer_options: Mapping[str, Any] | None,
    transformers: Sequence[TransformerStep],
) -> tuple[TransformerStep, ...]:
    first = (TransformerStep(transformer, dict(transformer_options or {})),) if transformer is not None else ()
    return (*first, *transformers)


class CopyAction(SubFeedAction):
    """Copy one DataObject to another, optionally transforming the DataFrame.

    Args:
        transformer: ``callable(df, **transformer_options) -> df``
        transformer_options: Keyword arguments for the transformer
        transformers: Further DataFrame transformers, applied in order
    """

    name = "copy"

    def __init__(
        self,
        action_id: str,
        *,
        transformer: DataFrameTransformer | None = None,
        transformer_options: Mapping[str, Any] | None = None,
        transformers: Sequence[TransformerStep] = (),
        **kwargs: Any,
    ) -> None:
        super().__init__(action_id, **kwargs)
        self.transformer = transformer
        self.transformer_options = dict(transformer_options or {})
        self.steps = _chain(transformer, transformer_options, transformers)
        for step in self.steps:
            if step.apply_to is not None:
                raise ConfigurationError(f"({self.id}) transformer {step.name}: apply_to is only supported with several inputs")

    def transform(self, sub_feed: SubFeed, context: ActionPipelineContext) -> SubFeed:
        feed = self._data_frame_feed(sub_feed, "transform")
        if not self.steps or feed.data_frame is None:
            return feed
        return feed.with_data_frame(apply_frame_chain(self.id, feed.data_frame, self.steps))


class CustomDataFrameAction(SubFeedsAction):
    """Transform several DataFrames into several DataFrames.

    The chain starts from ``{input_id: DataFrame}``; the frames of the output
    ids it ends with are written. Output feeds carry the partition values of
    the main input's feed (none when there is no main input).

    Args:
        transformer: ``callable(dfs, **transformer_options) -> dfs``
        transformer_options: Keyword arguments for the transformer
        transformers: Further transformers, applied in order
    """

    name = "custom"
    requires_transformer: ClassVar[bool] = True

    def __init__(
        self,
        action_id: str,
        *,
        transformer: DataFramesTransformer | None = None,
        transformer_options: Mapping[str, Any] | None = None,
        transformers: Sequence[TransformerStep] = (),
        **kwargs: Any,
    ) -> None:
        super().__init__(action_id, **kwargs)
        self.transformer = transformer
        self.transformer_options = dict(transformer_options or {})
        self.steps = _chain(transformer, transformer_options, transformers)
        if not self.steps:
            raise ConfigurationError(f"({self.id}) action type '{self.name}' requires a transformer")

    def transform(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> list[SubFeed]:
        frames: dict[str, pd.DataFrame] = {}
        for sub_feed in sub_feeds:
            feed = self._data_frame_feed(sub_feed, "transform")
            frames[feed.data_object_id] = feed.data_frame if feed.data_frame is not None else pd.DataFrame()

        result = apply_frames_chain(self.id, frames, self.steps)

        main_feed = self._main_feed(sub_feeds)
        partition_values = main_feed.partition_values if main_feed is not None else ()
        # Inputs stay in the result of the chain; only the other frames are outputs.
        return [
            DataFrameSubFeed(data_object_id=self._find_output(frame_id).id, partition_values=partition_values, data_frame=frame)
            for frame_id, frame in result.items()
            if frame_id in self.output_ids or frame_id not in self.input_ids
        ]


class FileTransferOptions(PluginConfig):
    delete_source_files: bool = Field(default=False, description="Delete input files after they were copied")


class FileTransferAction(SubFeedAction):
    """Copy the files of the selected partitions unchanged.

    Input and output must be file based DataObjects. With option
    ``delete_source_files`` the copied input files are removed after a
    successful exec, turning the copy into a move.
    """

    name = "file_transfer"
    sub_feed_type = FileSubFeed

    options_model = FileTransferOptions

    def __init__(self, action_id: str, **kwargs: Any) -> None:
        super().__init__(action_id, **kwargs)
        for data_object in (*self.inputs, *self.outputs):
            if not isinstance(data_object, CanHandleFilesProtocol):
                raise ConfigurationError(f"({self.id}) {data_object.id} is not a file based DataObject")
        self.delete_source_files = cast(FileTransferOptions, self.options).delete_source_files

    def _file_feed(self, sub_feed: SubFeed, operation: str) -> FileSubFeed:
        if not isinstance(sub_feed, FileSubFeed):
            raise TypeError(f"({self.id}) cannot {operation} a {type(sub_feed).__name__}, expected FileSubFeed")
        return sub_feed

    def _enrich_input[F: SubFeed](self, data_object: CanReadProtocol, sub_feed: F, phase: ExecutionPhase) -> F:
        if not isinstance(sub_feed, FileSubFeed) or sub_feed.file_refs is not None:
            return sub_feed
        files = cast(CanHandleFilesProtocol, data_object).list_files(sub_feed.partition_values)
        return sub_feed.with_file_refs(files)

    def transform(self, sub_feed: SubFeed, context: ActionPipelineContext) -> SubFeed:
        feed = self._file_feed(sub_feed, "transform")
        return replace(feed, processed_input_file_refs=feed.file_refs)

    def _validate_output(self, output: CanWriteProtocol, sub_feed: SubFeed) -> None:
        output.validate(pd.DataFrame(), sub_feed.partition_values)

    def _write_output(self, output: CanWriteProtocol, sub_feed: SubFeed) -> WriteResult:
        feed = self._file_feed(sub_feed, f"write {output.id} from")
        return cast(CanHandleFilesProtocol, output).write_files(feed.file_refs or (), feed.partition_values)

    def _finish_outputs(self, sub_feeds: Sequence[SubFeed]) -> list[SubFeed]:
        # Refs point at input files; consumers list the output's own files.
        return [f.break_lineage() for f in sub_feeds]

    def post_exec_sub_feed(self, input_feed: SubFeed, output_feed: SubFeed, context: ActionPipelineContext) -> None:
        if not self.delete_source_files:
            return
        files = self._file_feed(output_feed, "post-process").processed_input_file_refs or ()
        if files:
            cast(CanHandleFilesProtocol, self.input).delete_files(files)
            self._log.info("source_files_deleted", data_object_id=self.input.id, files=len(files))


BUILTIN_ACTIONS: tuple[type[SubFeedAction] | type[SubFeedsAction], ...] = (
    CopyAction,
    CustomDataFrameAction,
    FileTransferAction,
)
