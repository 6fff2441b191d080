from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from kubesecret.clients import Client


@dataclass(kw_only=True, frozen=True)
class Profile:
    """
    Describes how to connect to a Kubernetes cluster.
    """

    kubeconfig: str | None = None
    """
    Path to the Kubernetes configuration file. Relative to the profile configuration file. If not specified, it falls
    back to the default location (per `KUBECONFIG` or otherwise `~/.kube/config`).
    """

    context: str | None = None
    """
    The context to use from the Kubeconfig file. If not specified, the current context is used.
    """

    in_cluster: bool = False
    """
    Use the service account of the Pod that kubesecret runs in. The other options are ignored.
    """


@dataclass
class ProfileConfig:
    """
    Wrapper for the `kubesecret-profiles.yaml` configuration file.
    """

    FILENAME = "kubesecret-profiles.yaml"
    FALLBACK_PATH = Path.home() / ".config" / "kubesecret" / FILENAME
    DEFAULT_PROFILE = "default"

    file: Path | None
    profiles: dict[str, Profile] = field(default_factory=dict)

    @staticmethod
    def find_config_file(cwd: Path | None = None) -> Path | None:
        """
        Find the configuration file in *cwd* (defaults to the current working directory), any of its parents, or
        at the fallback location in the user's home directory.
        """

        cwd = cwd or Path.cwd()
        for directory in [cwd, *cwd.parents]:
            if (file := directory / ProfileConfig.FILENAME).exists():
                return file
        if ProfileConfig.FALLBACK_PATH.exists():
            return ProfileConfig.FALLBACK_PATH.absolute()
        return None

    @staticmethod
    def load(file: Path | None = None, /) -> "ProfileConfig":
        """
        Load the profiles from the given or the default configuration file. If there is no configuration file, an
        empty configuration is returned; the `default` profile is always available.
        """

        from databind.json import load as deser
        from yaml import safe_load

        if file is None:
            file = ProfileConfig.find_config_file()
        if file is None:
            return ProfileConfig(None, {})

        logger.debug("Loading profiles configuration from '{}'", file)
        profiles = deser(safe_load(file.read_text()) or {}, dict[str, Profile], filename=str(file))
        return ProfileConfig(file, profiles)

    def get_profile(self, name: str) -> Profile:
        """
        Return the profile with the given name.

        Raises:
            KeyError: If the profile does not exist. The `default` profile is implied if it is not configured.
        """

        if name in self.profiles:
            return self.profiles[name]
        if name == self.DEFAULT_PROFILE:
            return Profile()
        raise KeyError(f"Profile '{name}' not found in '{self.file}'")

    def connect(self, name: str) -> Client:
        """
        Create a client for the cluster that the named profile points to.
        """

        profile = self.get_profile(name)
        if profile.in_cluster:
            logger.info("Using in-cluster configuration (profile '{}').", name)
            return Client.in_cluster()

        kubeconfig: Path | None = None
        if profile.kubeconfig is not None:
            kubeconfig = Path(profile.kubeconfig).expanduser()
            if not kubeconfig.is_absolute() and self.file is not None:
                kubeconfig = self.file.parent / kubeconfig
        logger.info("Using profile '{}' with kubeconfig '{}'.", name, kubeconfig or "<default>")
        return Client.from_kubeconfig(kubeconfig, profile.context)
