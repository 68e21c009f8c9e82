"""Structured ffmpeg command model.

Commands are assembled from inputs, an optional filter graph and output
options, then rendered to an argv list. Nothing here spawns a process, so
every command the pipeline runs can be inspected in unit tests.
"""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class FFmpegInput:
    """A single `-i` input with the options that must precede it."""

    path: str
    options: list[str] = field(default_factory=list)

    def to_args(self) -> list[str]:
        return [*self.options, "-i", self.path]


@dataclass
class FilterGraph:
    """A filter_complex graph built one labelled chain at a time."""

    chains: list[str] = field(default_factory=list)

    def add(self, inputs: list[str], expression: str, outputs: list[str]) -> "FilterGraph":
        ins = "".join(f"[{label}]" for label in inputs)
        outs = "".join(f"[{label}]" for label in outputs)
        self.chains.append(f"{ins}{expression}{outs}")
        return self

    def render(self) -> str:
        return ";".join(self.chains)

    def __bool__(self) -> bool:
        return bool(self.chains)


@dataclass
class FFmpegCommand:
    output_path: str
    ffmpeg_path: str = "ffmpeg"
    inputs: list[FFmpegInput] = field(default_factory=list)
    filter_graph: FilterGraph = field(default_factory=FilterGraph)
    output_options: list[str] = field(default_factory=list)
    overwrite: bool = True

    def add_input(self, path: str | Path, *options: str) -> int:
        """Append an input and return its stream index."""
        self.inputs.append(FFmpegInput(path=str(path), options=list(options)))
        return len(self.inputs) - 1

    def add_output_options(self, *options: str) -> "FFmpegCommand":
        self.output_options.extend(options)
        return self

    def build(self) -> list[str]:
        cmd = [self.ffmpeg_path]
        if self.overwrite:
            cmd.append("-y")
        for inp in self.inputs:
            cmd.extend(inp.to_args())
        if self.filter_graph:
            cmd.extend(["-filter_complex", self.filter_graph.render()])
        cmd.extend(self.output_options)
        cmd.append(self.output_path)
        return cmd


def concat_list_line(path: str | Path) -> str:
    """One concat-demuxer entry: forward slashes, single quotes escaped as '\\''."""
    normalized = str(path).replace("\\", "/")
    escaped = normalized.replace("'", "'\\''")
    return f"file '{escaped}'"


def write_concat_list(paths: list[str | Path], list_path: str | Path) -> Path:
    list_path = Path(list_path)
    with open(list_path, "w", encoding="utf-8") as f:
        for path in paths:
            f.write(concat_list_line(path) + "\n")
    return list_path
