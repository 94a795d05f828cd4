from typing import Dict


class Finalizers:
    RAMEN_DOMAIN: str = "volumereplicationgroups.ramendr.openshift.io/"

    #: Guards the VolumeReplicationGroup until its managed resources are released
    VRG_PROTECTION = RAMEN_DOMAIN + "vrg-protection"

    #: Guards a PVC while it is protected by a replication backend
    PVC_VR_PROTECTION = RAMEN_DOMAIN + "pvc-vr-protection"

    #: Added by Kubernetes while a pod mounts the PVC
    PVC_IN_USE = "kubernetes.io/pvc-protection"


class Annotations:
    RAMEN_DOMAIN: str = Finalizers.RAMEN_DOMAIN

    PVC_VR_PROTECTED_KEY = RAMEN_DOMAIN + "vr-protected"
    PVC_VR_PROTECTED_VALUE = "protected"


    PV_RESTORE_KEY = RAMEN_DOMAIN + "ramen-restore"
    PV_RESTORE_VALUE = "True"


class Labels:
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    KUBERNETES_PART_OF_LABEL = KUBERNETES_DOMAIN + "part-of"

    OPERATOR_NAME = "ramen-vrg-operator"

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = labels if labels else dict()

    def include(self, label: str, value: str) -> "Labels":
        self._labels.update({label: value})
        return self

    def include_managed_by(self) -> "Labels":
        return self.include(self.KUBERNETES_MANAGED_BY_LABEL, self.OPERATOR_NAME)

    def include_part_of(self, vrg_name: str) -> "Labels":
        return self.include(self.KUBERNETES_PART_OF_LABEL, vrg_name[:63])

    def as_dict(self) -> Dict[str, str]:
        """Return labels as dictionary."""
        return self._labels.copy()
