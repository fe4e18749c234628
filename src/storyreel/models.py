"""Data model shared by the compile pipeline.

SceneAsset is what upstream image/audio generation hands over for one scene.
GeneratedAssets is the ordered collection of them, in the same JSON shape
the asset generator writes to generatedAssets.json.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class SceneAsset:
    scene_id: str
    dialogue: str
    image_file_path: Path
    audio_file_path: Path
    duration_seconds: float

    def to_json(self) -> dict:
        return {
            "sceneId": self.scene_id,
            "dialogue": self.dialogue,
            "imageFilePath": str(self.image_file_path),
            "audioFilePath": str(self.audio_file_path),
            "durationSeconds": self.duration_seconds,
        }

    @classmethod
    def from_json(cls, data: dict) -> "SceneAsset":
        """Build from one generatedAssets.json entry (camelCase keys).

        Extra keys written by the generator (outputImageId, base64Image)
        are ignored.
        """
        for key in ("sceneId", "imageFilePath", "audioFilePath", "durationSeconds"):
            if data.get(key) is None:
                raise ValueError(f"Scene asset: missing required field '{key}'")
        return cls(
            scene_id=str(data["sceneId"]),
            dialogue=str(data.get("dialogue", "")),
            image_file_path=Path(data["imageFilePath"]),
            audio_file_path=Path(data["audioFilePath"]),
            duration_seconds=float(data["durationSeconds"]),
        )


@dataclass(frozen=True)
class VideoSettings:
    """Output and engine settings for one compile.

    Attributes:
        fps: Output frame rate.
        resolution: (width, height) in pixels.
        transition: Crossfade duration in seconds between adjacent scenes.
        ffmpeg: Path to the ffmpeg binary.
        captions: Burn each scene's dialogue into its clip.
        jobs: Maximum concurrent clip renders (1 = sequential).
        timeout: Per-invocation ffmpeg timeout in seconds, or None.
    """

    fps: int
    resolution: tuple[int, int]
    transition: float
    ffmpeg: str
    captions: bool = False
    jobs: int = 1
    timeout: float | None = None

    @property
    def size(self) -> str:
        """Resolution in ffmpeg's WxH form."""
        return f"{self.resolution[0]}x{self.resolution[1]}"


class GeneratedAssets(Mapping):
    """Ordered scene_id -> SceneAsset mapping plus the compiled video path.

    Iteration order is insertion order, which is the final scene order.
    """

    def __init__(self, scenes=(), video_file_path: Path | None = None):
        self._scenes: dict[str, SceneAsset] = {}
        for scene in scenes:
            self.add(scene)
        self.video_file_path = video_file_path

    def add(self, scene: SceneAsset) -> None:
        if scene.scene_id in self._scenes:
            raise ValueError(f"Duplicate scene id: '{scene.scene_id}'")
        self._scenes[scene.scene_id] = scene

    def __getitem__(self, scene_id: str) -> SceneAsset:
        return self._scenes[scene_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._scenes)

    def __len__(self) -> int:
        return len(self._scenes)

    def scenes(self) -> list[SceneAsset]:
        return list(self._scenes.values())

    def to_json(self) -> dict:
        data = {sid: scene.to_json() for sid, scene in self._scenes.items()}
        if self.video_file_path is not None:
            data["videoFilePath"] = str(self.video_file_path)
        return data

    @classmethod
    def from_json(cls, data: dict) -> "GeneratedAssets":
        video = data.get("videoFilePath")
        scenes = []
        for key, entry in data.items():
            if key == "videoFilePath":
                continue
            if not isinstance(entry, dict):
                raise ValueError(f"Scene asset '{key}': expected an object, got {entry!r}")
            scenes.append(SceneAsset.from_json({"sceneId": key, **entry}))
        return cls(scenes, video_file_path=Path(video) if video else None)
