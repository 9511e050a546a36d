"""BRDF evaluation and importance sampling.

Two reflectance models are supported, both parameterised by diffuse ``kd``,
specular ``ks`` and exponent ``n``:

Normalized Phong (half-vector form):
    f = kd / pi + ks * (n + 8) / (8 pi) * max(0, n.h)^n

Microfacet (Cook-Torrance style):
    D = (n + 2) / (2 pi) * max(0, h.n)^n
    F = ks + (1 - ks) * (1 - h.l)^5                     (Schlick)
    G = min(1, 2 (h.n)(v.n) / (v.h), 2 (h.n)(l.n) / (l.h))
    f = D G F / (4 (l.n)(v.n))

Directions are sampled from a two-lobe mixture matched to the BRDF: with
probability ``dw = mean(kd) / (mean(kd) + mean(ks))`` a cosine-weighted
diffuse bounce, otherwise a half-vector drawn from a cos^n lobe and reflected.
The returned pdf is the density of the whole mixture, so the estimator can
divide by it directly.

Example:
    >>> # Inside a Taichi kernel:
    >>> # l, pdf = sample_brdf(kd, ks, n, v, norm, rng_next_vec2f(p), rng_next_float(p))
    >>> # weight = eval_brdfcos(kd, ks, n, v, l, norm, microfacet) / pdf
"""

import taichi as ti
import taichi.math as tm

from src.pathtrace.core.ray import (
    frame_from_z,
    is_zero,
    mean,
    sample_direction_hemispherical_cosine,
    sample_direction_hemispherical_cosine_pdf,
    sample_direction_hemispherical_cospower,
    sample_direction_hemispherical_cospower_pdf,
    transform_direction,
    transform_direction_inverse,
)

vec2 = tm.vec2
vec3 = tm.vec3


@ti.func
def eval_brdf(
    kd: vec3,
    ks: vec3,
    n: ti.f32,
    v: vec3,
    l: vec3,
    norm: vec3,
    microfacet: ti.i32,
) -> vec3:
    """Evaluate the BRDF for a view and light direction.

    The cosine term is not included. In the microfacet branch the result
    divides by (l.n)(v.n), so callers must only pass directions on the
    normal's side of the surface; eval_brdfcos does that filtering.

    Args:
        kd: Diffuse reflectance.
        ks: Specular reflectance.
        n: Specular exponent.
        v: Unit direction toward the viewer.
        l: Unit direction toward the light.
        norm: Unit surface normal.
        microfacet: 1 for the microfacet model, 0 for normalized Phong.

    Returns:
        The BRDF value (RGB).
    """
    h = tm.normalize(v + l)
    result = vec3(0.0, 0.0, 0.0)
    if not microfacet:
        result = kd / tm.pi + ks * (n + 8.0) / (8.0 * tm.pi) * ti.pow(
            ti.max(0.0, tm.dot(norm, h)), n
        )
    else:
        hn = tm.dot(h, norm)
        vn = tm.dot(v, norm)
        ln = tm.dot(l, norm)
        d = (2.0 + n) / (2.0 * tm.pi) * ti.pow(ti.max(0.0, hn), n)
        f = ks + (vec3(1.0, 1.0, 1.0) - ks) * ti.pow(1.0 - tm.dot(h, l), 5.0)
        g = ti.min(
            1.0,
            ti.min(2.0 * hn * vn / tm.dot(v, h), 2.0 * hn * ln / tm.dot(l, h)),
        )
        result = (d * g * f) / (4.0 * ln * vn)
    return result


@ti.func
def eval_brdfcos(
    kd: vec3,
    ks: vec3,
    n: ti.f32,
    v: vec3,
    l: vec3,
    norm: vec3,
    microfacet: ti.i32,
) -> vec3:
    """Evaluate max(0, n.l) * BRDF, returning zero for degenerate directions.

    Directions below or tangent to the surface, on either the view or the
    light side, contribute nothing and are never passed to eval_brdf, which
    keeps NaN and Inf out of the radiance accumulator.
    """
    result = vec3(0.0, 0.0, 0.0)
    cos_l = tm.dot(norm, l)
    cos_v = tm.dot(norm, v)
    if cos_l > 0.0 and cos_v > 0.0:
        result = cos_l * eval_brdf(kd, ks, n, v, l, norm, microfacet)
    return result


@ti.func
def diffuse_weight(kd: vec3, ks: vec3) -> ti.f32:
    """Probability of choosing the diffuse lobe in the sampling mixture."""
    return mean(kd) / (mean(kd) + mean(ks))


@ti.func
def sample_cosine(norm: vec3, ruv: vec2):
    """Pick a direction with cosine-weighted density about the normal.

    Args:
        norm: Unit surface normal.
        ruv: Two uniform numbers in [0, 1).

    Returns:
        A tuple (direction, pdf) with pdf = cos(theta) / pi.
    """
    fx, fy, fz = frame_from_z(norm)
    l_local = sample_direction_hemispherical_cosine(ruv)
    pdf = sample_direction_hemispherical_cosine_pdf(l_local)
    l = transform_direction(fx, fy, fz, l_local)
    return l, pdf


@ti.func
def _mixture_pdf_local(
    dw: ti.f32, n: ti.f32, v_local: vec3, l_local: vec3, h_local: vec3
) -> ti.f32:
    dpdf = sample_direction_hemispherical_cosine_pdf(l_local)
    # Jacobian of the reflection l = 2(v.h)h - v: dw_l = 4 (v.h) dw_h
    vh = tm.dot(v_local, h_local)
    spdf = 0.0
    if vh > 0.0:
        spdf = sample_direction_hemispherical_cospower_pdf(h_local, n) / (4.0 * vh)
    return dw * dpdf + (1.0 - dw) * spdf


@ti.func
def pdf_brdf(kd: vec3, ks: vec3, n: ti.f32, v: vec3, l: vec3, norm: vec3) -> ti.f32:
    """Density with which sample_brdf produces direction l.

    Args:
        kd: Diffuse reflectance.
        ks: Specular reflectance.
        n: Specular exponent.
        v: Unit direction toward the viewer.
        l: Unit candidate outgoing direction.
        norm: Unit surface normal.

    Returns:
        The solid-angle density of the sampling mixture at l.
    """
    fx, fy, fz = frame_from_z(norm)
    l_local = transform_direction_inverse(fx, fy, fz, l)
    pdf = 0.0
    if is_zero(ks):
        pdf = sample_direction_hemispherical_cosine_pdf(l_local)
    else:
        v_local = transform_direction_inverse(fx, fy, fz, v)
        h_local = tm.normalize(l_local + v_local)
        pdf = _mixture_pdf_local(diffuse_weight(kd, ks), n, v_local, l_local, h_local)
    return pdf


@ti.func
def sample_brdf(
    kd: vec3,
    ks: vec3,
    n: ti.f32,
    v: vec3,
    norm: vec3,
    ruv: vec2,
    rl: ti.f32,
):
    """Pick a direction according to the BRDF mixture.

    Purely diffuse materials (ks exactly zero) use cosine sampling. Otherwise
    rl selects the lobe: rl < dw draws a cosine-weighted direction, else a
    cos^n half-vector around the normal is drawn and v is reflected about it.

    Args:
        kd: Diffuse reflectance.
        ks: Specular reflectance.
        n: Specular exponent.
        v: Unit direction toward the viewer.
        norm: Unit surface normal.
        ruv: Two uniform numbers in [0, 1) for the direction.
        rl: One uniform number in [0, 1) for the lobe choice.

    Returns:
        A tuple (direction, pdf) where pdf is the mixture density. The
        direction may fall below the surface for the specular lobe; such
        directions have zero BRDF-cosine weight.
    """
    l = vec3(0.0, 0.0, 0.0)
    pdf = 0.0
    if is_zero(ks):
        l, pdf = sample_cosine(norm, ruv)
    else:
        fx, fy, fz = frame_from_z(norm)
        dw = diffuse_weight(kd, ks)
        v_local = transform_direction_inverse(fx, fy, fz, v)
        l_local = vec3(0.0, 0.0, 0.0)
        h_local = vec3(0.0, 0.0, 0.0)
        if rl < dw:
            l_local = sample_direction_hemispherical_cosine(ruv)
            h_local = tm.normalize(l_local + v_local)
        else:
            h_local = sample_direction_hemispherical_cospower(ruv, n)
            l_local = -v_local + h_local * 2.0 * tm.dot(v_local, h_local)
        l = transform_direction(fx, fy, fz, l_local)
        pdf = _mixture_pdf_local(dw, n, v_local, l_local, h_local)
    return l, pdf
