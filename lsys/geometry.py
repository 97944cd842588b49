"""
Mesh synthesis from a branch skeleton.

Each segment becomes a tube between two rings of vertices. A child's
start ring is the parent's end ring, shared by index, so connected
branches form a watertight surface without seams. Leaves become
double-sided quads appended after all branch geometry.

Buffers follow the usual GPU layout: per-vertex attribute arrays and a
flat triangle index list with counter-clockwise front faces. Branch
geometry is a contiguous prefix of both, which lets callers split the
mesh into a bark section and a leaf section with different materials.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from lsys.config import GeometryConfig, LODLevel
from lsys.turtle import BranchSegment, LeafPlacement
from lsys.vectors import (
    EPSILON,
    Z_AXIS,
    as_vec3,
    perpendicular_vectors,
    ring_points,
    rotate_about_axis,
    vec_mag,
    vec_normalize,
)

logger = logging.getLogger(__name__)

MIN_RADIAL_SEGMENTS = 3
MAX_RADIAL_SEGMENTS = 32
MIN_SEGMENT_LENGTH = 1e-4
FALLBACK_LOD = LODLevel(radial_segments=8, screen_size=1.0, include_leaves=True)


@dataclass
class MeshSection:
    """One material group of a mesh, indices local to the section."""

    vertices: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    vertex_colors: np.ndarray
    tangents: np.ndarray
    triangles: np.ndarray

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles) // 3


@dataclass
class MeshBuffer:
    """
    Geometry for one LOD.

    vertices/normals/tangents are (N, 3), uvs (N, 2), vertex_colors (N, 4)
    and triangles a flat int32 array of 3M indices. segment_rings maps a
    segment index to the first vertex of its start and end rings.
    """

    vertices: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    vertex_colors: np.ndarray
    tangents: np.ndarray
    triangles: np.ndarray
    branch_vertex_count: int = 0
    branch_triangle_count: int = 0
    radial_segments: int = 0
    segment_rings: dict[int, tuple[int, int]] = field(default_factory=dict)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles) // 3

    @property
    def leaf_vertex_count(self) -> int:
        return self.vertex_count - self.branch_vertex_count

    @property
    def leaf_triangle_count(self) -> int:
        return self.triangle_count - self.branch_triangle_count

    def ring_indices(self, first_vertex: int) -> np.ndarray:
        """Vertex indices of the ring starting at first_vertex."""
        return np.arange(first_vertex, first_vertex + self.radial_segments)

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """Axis-aligned (min, max) corners; zeros for an empty mesh."""
        if self.vertex_count == 0:
            return np.zeros(3), np.zeros(3)
        return self.vertices.min(axis=0), self.vertices.max(axis=0)

    def _section(self, v0: int, v1: int, t0: int, t1: int) -> MeshSection:
        return MeshSection(
            vertices=self.vertices[v0:v1],
            normals=self.normals[v0:v1],
            uvs=self.uvs[v0:v1],
            vertex_colors=self.vertex_colors[v0:v1],
            tangents=self.tangents[v0:v1],
            triangles=self.triangles[t0 * 3 : t1 * 3] - v0,
        )

    def branch_section(self) -> MeshSection:
        return self._section(0, self.branch_vertex_count, 0, self.branch_triangle_count)

    def leaf_section(self) -> MeshSection:
        """Leaf geometry with indices rebased to start at zero."""
        return self._section(
            self.branch_vertex_count,
            self.vertex_count,
            self.branch_triangle_count,
            self.triangle_count,
        )


def compute_tangents(normals: np.ndarray) -> np.ndarray:
    """Unit tangent per normal: reference axis (Z, or X near the poles) x normal."""
    if len(normals) == 0:
        return np.zeros((0, 3))
    near_pole = np.abs(normals[:, 2]) >= 0.9
    refs = np.where(near_pole[:, None], np.array([1.0, 0.0, 0.0]), Z_AXIS)
    tangents = np.cross(refs, normals)
    lengths = np.linalg.norm(tangents, axis=1, keepdims=True)
    return np.divide(tangents, lengths, out=np.zeros_like(tangents), where=lengths > EPSILON)


class _MeshBuilder:
    """Accumulates attribute rows and triangle indices before packing."""

    def __init__(self):
        self.vertices: list[np.ndarray] = []
        self.normals: list[np.ndarray] = []
        self.uvs: list[tuple[float, float]] = []
        self.colors: list[tuple[float, float, float, float]] = []
        self.triangles: list[int] = []

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def add_vertex(self, position, normal, uv, color) -> int:
        self.vertices.append(position)
        self.normals.append(normal)
        self.uvs.append(uv)
        self.colors.append(color)
        return len(self.vertices) - 1

    def build(self, **extra) -> MeshBuffer:
        vertices = np.array(self.vertices, dtype=float).reshape(-1, 3)
        normals = np.array(self.normals, dtype=float).reshape(-1, 3)
        return MeshBuffer(
            vertices=vertices,
            normals=normals,
            uvs=np.array(self.uvs, dtype=float).reshape(-1, 2),
            vertex_colors=np.array(self.colors, dtype=float).reshape(-1, 4),
            tangents=compute_tangents(normals),
            triangles=np.array(self.triangles, dtype=np.int32),
            **extra,
        )


class TreeGeometry:
    """Turns segments and leaves into per-LOD mesh buffers."""

    def __init__(self, config: Optional[GeometryConfig] = None):
        self.config = config or GeometryConfig()

    def generate_mesh(
        self,
        segments: Sequence[BranchSegment],
        leaves: Sequence[LeafPlacement] = (),
        radial_segments: int = 8,
        include_leaves: bool = True,
    ) -> MeshBuffer:
        """Build one mesh with the given ring resolution."""
        n = min(max(radial_segments, MIN_RADIAL_SEGMENTS), MAX_RADIAL_SEGMENTS)
        if n != radial_segments:
            logger.debug("Radial segments %d clamped to %d", radial_segments, n)

        builder = _MeshBuilder()
        end_rings: dict[int, tuple[int, float]] = {}  # segment -> (first vertex, v)
        segment_rings: dict[int, tuple[int, int]] = {}
        v_per_unit = self.config.bark_uv_tiling / self.config.uv_unit_length

        for index, segment in enumerate(segments):
            length = segment.length
            if length < MIN_SEGMENT_LENGTH:
                logger.debug("Skipping degenerate segment %d", index)
                continue
            direction = vec_normalize(segment.end - segment.start)

            parent = end_rings.get(segment.parent_index)
            if parent is not None:
                start_ring, v_start = parent
            else:
                if segment.parent_index >= 0:
                    logger.debug(
                        "Parent ring %d missing for segment %d, using fresh ring",
                        segment.parent_index,
                        index,
                    )
                v_start = 0.0
                start_ring = self._add_ring(
                    builder, segment.start, direction, segment.start_radius, n, v_start
                )

            v_end = v_start + length * v_per_unit
            end_ring = self._add_ring(
                builder, segment.end, direction, segment.end_radius, n, v_end
            )
            self._connect_rings(builder, start_ring, end_ring, n)

            end_rings[index] = (end_ring, v_end)
            segment_rings[index] = (start_ring, end_ring)

        branch_vertices = builder.vertex_count
        branch_triangles = len(builder.triangles) // 3

        if include_leaves:
            for leaf in leaves:
                self._add_leaf(builder, leaf)

        mesh = builder.build(
            branch_vertex_count=branch_vertices,
            branch_triangle_count=branch_triangles,
            radial_segments=n,
            segment_rings=segment_rings,
        )
        logger.debug(
            "Mesh: %d vertices, %d triangles (%d radial)",
            mesh.vertex_count,
            mesh.triangle_count,
            n,
        )
        return mesh

    def generate_mesh_lods(
        self,
        segments: Sequence[BranchSegment],
        leaves: Sequence[LeafPlacement] = (),
        lods: Optional[Sequence[LODLevel]] = None,
    ) -> list[MeshBuffer]:
        """One mesh per LOD level, in the order given."""
        if not lods:
            logger.warning("No LOD levels given, using a single default level")
            lods = [FALLBACK_LOD]
        return [
            self.generate_mesh(segments, leaves, lod.radial_segments, lod.include_leaves)
            for lod in lods
        ]

    # -------------------------------------------------------------------------
    # Branch rings
    # -------------------------------------------------------------------------

    def _add_ring(
        self,
        builder: _MeshBuilder,
        center: np.ndarray,
        direction: np.ndarray,
        radius: float,
        count: int,
        v: float,
    ) -> int:
        """Append `count` ring vertices; returns the first index."""
        first = builder.vertex_count
        color = self.config.bark_color
        for i, point in enumerate(ring_points(center, direction, radius, count)):
            normal = vec_normalize(point - center)
            builder.add_vertex(point, normal, (i / count, v), color)
        return first

    @staticmethod
    def _connect_rings(builder: _MeshBuilder, start: int, end: int, count: int) -> None:
        """Two triangles per quad, outward facing."""
        for i in range(count):
            j = (i + 1) % count
            a, b = start + i, start + j
            c, d = end + i, end + j
            builder.triangles.extend((a, b, c, b, d, c))

    # -------------------------------------------------------------------------
    # Leaves
    # -------------------------------------------------------------------------

    def _add_leaf(self, builder: _MeshBuilder, leaf: LeafPlacement) -> None:
        """Double-sided quad centred on the leaf position."""
        normal = vec_normalize(as_vec3(leaf.normal))
        if not normal.any():
            normal = Z_AXIS.copy()

        up = as_vec3(leaf.up)
        up = up - normal * float(np.dot(up, normal))
        if vec_mag(up) < EPSILON:
            _, up = perpendicular_vectors(normal)
        up = vec_normalize(up)
        right = np.cross(up, normal)

        if leaf.rotation:
            right = rotate_about_axis(right, normal, leaf.rotation)
            up = rotate_about_axis(up, normal, leaf.rotation)

        width, height = leaf.size
        if width <= 0 or height <= 0:
            width, height = self.config.default_leaf_size
        hw, hh = width * 0.5, height * 0.5

        center = as_vec3(leaf.position)
        corners = (
            (center - right * hw - up * hh, (0.0, 1.0)),
            (center + right * hw - up * hh, (1.0, 1.0)),
            (center + right * hw + up * hh, (1.0, 0.0)),
            (center - right * hw + up * hh, (0.0, 0.0)),
        )
        color = self.config.leaf_color
        base = builder.vertex_count
        for position, uv in corners:
            builder.add_vertex(position, normal, uv, color)

        builder.triangles.extend((base, base + 1, base + 2, base, base + 2, base + 3))
        builder.triangles.extend((base + 2, base + 1, base, base + 3, base + 2, base))


def generate_mesh(
    segments: Sequence[BranchSegment],
    leaves: Sequence[LeafPlacement] = (),
    radial_segments: int = 8,
    include_leaves: bool = True,
    config: Optional[GeometryConfig] = None,
) -> MeshBuffer:
    return TreeGeometry(config).generate_mesh(segments, leaves, radial_segments, include_leaves)


def generate_mesh_lods(
    segments: Sequence[BranchSegment],
    leaves: Sequence[LeafPlacement] = (),
    lods: Optional[Sequence[LODLevel]] = None,
    config: Optional[GeometryConfig] = None,
) -> list[MeshBuffer]:
    return TreeGeometry(config).generate_mesh_lods(segments, leaves, lods)
