"""
gcp_gke
-------

GKE 클러스터 생성 모듈.
데모 비용 기준으로 노드 2개(e2-medium)의 작은 클러스터를 만든다.
"""

from __future__ import annotations

from typing import List

from .config import SetupConfig
from .gcloud import Gcloud
from .logging_utils import get_logger


logger = get_logger(__name__)


NUM_NODES = 2
MACHINE_TYPE = "e2-medium"
# 클러스터 생성은 보통 5~10분 걸린다.
CREATE_TIMEOUT_SECONDS = 1800.0


def describe_cluster_args(cfg: SetupConfig) -> List[str]:
    return [
        "container",
        "clusters",
        "describe",
        cfg.names.cluster,
        f"--zone={cfg.zone}",
        f"--project={cfg.project_id}",
    ]


def create_cluster_args(cfg: SetupConfig) -> List[str]:
    return [
        "container",
        "clusters",
        "create",
        cfg.names.cluster,
        f"--zone={cfg.zone}",
        f"--num-nodes={NUM_NODES}",
        f"--machine-type={MACHINE_TYPE}",
        "--enable-autorepair",
        "--enable-autoupgrade",
        f"--workload-pool={cfg.workload_pool}",
        f"--project={cfg.project_id}",
    ]


def ensure_cluster(gcloud: Gcloud, cfg: SetupConfig) -> str:
    cluster = cfg.names.cluster
    logger.info("GKE 클러스터 확인: %s (%s)", cluster, cfg.zone)

    if gcloud.exists(describe_cluster_args(cfg)):
        logger.info("기존 GKE 클러스터를 사용합니다: %s", cluster)
        return f"클러스터 이미 존재함 ({cluster})"

    gcloud.run(
        create_cluster_args(cfg),
        timeout=CREATE_TIMEOUT_SECONDS,
        spinner_message=f"GKE 클러스터 생성 중 ({cluster}, 수 분 소요)",
    )
    logger.info("GKE 클러스터를 생성했습니다: %s", cluster)
    return f"클러스터 생성됨 ({cluster}, {cfg.zone}, workload pool={cfg.workload_pool})"
