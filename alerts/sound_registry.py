"""警报声音注册表：声音标识到音频文件路径的静态映射"""

from typing import Dict, List, Mapping


class SoundRegistry:
    """启动时显式注册可用的警报声音，按标识查询。"""

    def __init__(self):
        self._sounds: Dict[str, str] = {}

    @classmethod
    def from_mapping(cls, sounds: Mapping[str, str]) -> "SoundRegistry":
        registry = cls()
        for sound_id, path in sounds.items():
            registry.register(sound_id, path)
        return registry

    def register(self, sound_id: str, path: str) -> None:
        if not sound_id:
            raise ValueError("声音标识不能为空")
        self._sounds[sound_id] = path

    def get(self, sound_id: str) -> str:
        """
        返回声音对应的音频文件路径。

        Raises:
            KeyError: 声音未注册
        """
        try:
            return self._sounds[sound_id]
        except KeyError:
            raise KeyError(f"未注册的声音: {sound_id}") from None

    def names(self) -> List[str]:
        return sorted(self._sounds)

    def __contains__(self, sound_id: object) -> bool:
        return sound_id in self._sounds

    def __len__(self) -> int:
        return len(self._sounds)
