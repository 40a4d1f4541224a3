"""
設定管理

YAMLファイルと環境変数からtokenkeeperの設定を読み込む
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from tokenkeeper.config.settings import TokenKeeperSettings
from tokenkeeper.errors import ConfigurationException, create_config_error


class ConfigManager:
    """設定の読み込みと管理

    設定ファイルから値を読み込み、TokenKeeperSettingsを構築する。
    環境変数（TOKENKEEPER_*）は設定ファイルの値を上書きする。
    """

    KNOWN_KEYS = tuple(TokenKeeperSettings.model_fields.keys())

    def __init__(self):
        """ConfigManagerを初期化"""
        self._settings: Optional[TokenKeeperSettings] = None

    def load(
        self,
        config_path: Optional[Path] = None,
        force_reload: bool = False
    ) -> TokenKeeperSettings:
        """設定を読み込む

        Args:
            config_path: 設定ファイルのパス（省略時はデフォルトパスを検索）
            force_reload: キャッシュを無視して再読み込みするかどうか

        Returns:
            TokenKeeperSettings: 読み込んだ設定

        Raises:
            ConfigurationException: 設定ファイルまたは設定値が不正な場合
        """
        if self._settings is not None and not force_reload:
            return self._settings

        file_config = self._load_from_file(config_path)
        try:
            self._settings = TokenKeeperSettings(**file_config)
        except ValidationError as exc:
            raise ConfigurationException(
                create_config_error(
                    "設定値が不正です。",
                    details={"errors": [str(err.get("msg")) for err in exc.errors()]},
                )
            ) from exc
        return self._settings

    def _load_from_file(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """設定ファイルから読み込み

        Args:
            config_path: 設定ファイルのパス

        Returns:
            Dict[str, Any]: 読み込んだ設定値
        """
        if config_path is None:
            for path in self._get_default_config_paths():
                if path.exists():
                    config_path = path
                    break
        elif not Path(config_path).exists():
            raise ConfigurationException(
                create_config_error(
                    f"設定ファイルが見つかりません: {config_path}",
                    details={"path": str(config_path)},
                )
            )

        if config_path is None:
            return {}

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationException(
                create_config_error(
                    f"設定ファイルの形式が不正です: {config_path}",
                    details={"path": str(config_path)},
                )
            ) from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationException(
                create_config_error(
                    "設定ファイルのトップレベルはマッピングである必要があります。",
                    details={"path": str(config_path)},
                )
            )
        return self._normalize_config(data)

    def _get_default_config_paths(self) -> List[Path]:
        """デフォルトの設定ファイルパスを取得

        Returns:
            List[Path]: 検索する設定ファイルパスのリスト
        """
        paths = []

        # カレントディレクトリ
        paths.append(Path.cwd() / "tokenkeeper.yaml")
        paths.append(Path.cwd() / "tokenkeeper.yml")

        # ホームディレクトリ
        home = Path.home()
        paths.append(home / ".config" / "tokenkeeper" / "config.yaml")
        paths.append(home / ".config" / "tokenkeeper" / "config.yml")

        return paths

    def _normalize_config(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """既知のキーのみを残す

        Args:
            data: 生の設定データ

        Returns:
            Dict[str, Any]: 正規化された設定値
        """
        result = {key: data[key] for key in self.KNOWN_KEYS if key in data}

        # authority: {host: ..., tenant: ..., validate: ...} 形式も受け付ける
        authority_cfg = data.get("authority")
        if isinstance(authority_cfg, dict):
            if "host" in authority_cfg:
                result.setdefault("authority_host", authority_cfg["host"])
            if "tenant" in authority_cfg:
                result.setdefault("tenant", authority_cfg["tenant"])
            if "validate" in authority_cfg:
                result.setdefault("validate_authority", authority_cfg["validate"])

        return result
