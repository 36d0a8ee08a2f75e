#!/usr/bin/env python3
"""
run_mesher.py

Run a recorded sequence of frames through the Mesher:
1. Load frames (pose, landmarks, keypoints, 2D triangulation) from JSON
2. Update the 3D mesh frame by frame
3. Segment and track ground/wall planes after every frame
4. Export the final mesh and planes

Input format:
    {"frames": [{
        "pose": {"rotation": 3x3, "translation": 3},
        "landmarks": {"<lmk_id>": [x, y, z], ...},
        "keypoints": [[u, v], ...],
        "landmark_ids": [lmk_id or -1, ...],
        "mesh_2d": [[u1, v1, u2, v2, u3, v3], ...],
        "keypoints_3d": [[x, y, z], ...],          (optional, stereo)
        "right_keypoints_valid": [true, ...]       (optional, stereo)
    }, ...]}

Usage Examples:
    # Default parameters
    python run_mesher.py sequence.json

    # Custom parameters, export mesh and planes
    python run_mesher.py sequence.json --config config.yaml \\
        --output-mesh mesh.ply --output-planes planes.json
"""

import argparse
import json
import time
from pathlib import Path

from tqdm import tqdm

from mesh_segmentation import Frame, Mesher, Pose3, StereoFrame, load_config


def load_sequence(filepath):
    """
    Load a frame sequence from JSON.

    Returns:
        frames: List of dicts with Pose3, landmark map, Frame, 2D mesh and
            optional StereoFrame
    """
    print(f"📂 Loading {filepath}...")
    with open(filepath) as f:
        data = json.load(f)

    frames = []
    for raw in data["frames"]:
        frame = Frame(raw["keypoints"], raw["landmark_ids"])
        stereo_frame = None
        if "keypoints_3d" in raw:
            stereo_frame = StereoFrame(
                frame, raw["keypoints_3d"], raw.get("right_keypoints_valid")
            )
        frames.append(
            {
                "pose": Pose3(raw["pose"]["rotation"], raw["pose"]["translation"]),
                "landmarks": {
                    int(lmk_id): point for lmk_id, point in raw["landmarks"].items()
                },
                "frame": frame,
                "stereo_frame": stereo_frame,
                "mesh_2d": raw["mesh_2d"],
            }
        )

    print(f"✅ Loaded {len(frames)} frames")
    return frames


def planes_to_dict(planes):
    return [
        {
            "id": plane.symbol,
            "normal": plane.normal.tolist(),
            "distance": plane.distance,
            "type": plane.cluster_tag.name.lower(),
            "lmk_ids": list(plane.lmk_ids),
            "triangle_ids": list(plane.triangle_cluster.triangle_ids),
        }
        for plane in planes
    ]


def print_statistics(mesher, planes):
    lmk_ids, positions = mesher.get_vertices_mesh()
    faces = mesher.get_polygons_mesh()

    print("\n📊 Mesh Statistics:")
    print(f"   Vertices:  {len(lmk_ids):,}")
    print(f"   Triangles: {len(faces):,}")
    if len(positions) > 0:
        min_pos = positions.min(axis=0)
        max_pos = positions.max(axis=0)
        print(f"   Bounding box:")
        print(f"     X: [{min_pos[0]:.3f}, {max_pos[0]:.3f}] m")
        print(f"     Y: [{min_pos[1]:.3f}, {max_pos[1]:.3f}] m")
        print(f"     Z: [{min_pos[2]:.3f}, {max_pos[2]:.3f}] m")

    print(f"\n📐 Tracked planes: {len(planes)}")
    print(f"   {'ID':<6} {'Type':<8} {'Normal':<26} {'Distance':<10} {'Lmks':<6}")
    print(f"   {'─'*58}")
    for plane in planes:
        normal = ", ".join(f"{c:+.2f}" for c in plane.normal)
        print(
            f"   {plane.symbol:<6} {plane.cluster_tag.name.lower():<8} "
            f"[{normal}]{'':<5} {plane.distance:<10.3f} {len(plane.lmk_ids):<6}"
        )


def main():
    """
    Main entry point.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description="Build a landmark mesh and track ground/wall planes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input", help="Input frame sequence (.json)")
    parser.add_argument("--config", help="YAML file with mesher parameters")
    parser.add_argument("--output-mesh", help="Export final mesh (.ply or .obj)")
    parser.add_argument("--output-planes", help="Export tracked planes (.json)")
    parser.add_argument("--no-planes", action="store_true", help="Only build the mesh")

    args = parser.parse_args()

    if not Path(args.input).exists():
        print(f"❌ Error: Input file not found: {args.input}")
        return 1

    try:
        start_time = time.time()

        params = load_config(args.config)
        mesher = Mesher(params)
        frames = load_sequence(args.input)

        planes = []
        for data in tqdm(frames, desc="Frames"):
            mesher.update_mesh_3d(
                data["landmarks"],
                data["mesh_2d"],
                data["frame"],
                data["pose"],
                data["stereo_frame"],
            )
            if not args.no_planes:
                planes = mesher.cluster_planes_from_mesh(data["landmarks"])

        print_statistics(mesher, planes)

        if args.output_mesh:
            from mesh_segmentation.visualization import save_mesh

            path = save_mesh(mesher, args.output_mesh, planes)
            print(f"\n💾 Mesh saved to {path}")

        if args.output_planes:
            with open(args.output_planes, "w") as f:
                json.dump(planes_to_dict(planes), f, indent=2)
            print(f"💾 Planes saved to {args.output_planes}")

        print(f"\n⏱️  Total time: {time.time() - start_time:.2f}s")
        return 0

    except Exception as e:
        print(f"❌ Error: {e}")
        import traceback

        traceback.print_exc()
        return 1


if __name__ == "__main__":
    exit(main())
