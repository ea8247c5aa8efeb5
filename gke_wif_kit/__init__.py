"""
gke_wif_kit
-----------

GitHub Actions → GKE 배포 파이프라인을 위한 GCP 리소스 준비/점검 CLI 패키지.
Artifact Registry, GKE 클러스터, 서비스 계정, Workload Identity Federation
(pool/provider/바인딩)을 순서대로 생성하고, 현재 상태를 진단하는 것을 목표로 한다.
"""

__all__ = [
    "config",
    "provisioner",
    "verifier",
]
