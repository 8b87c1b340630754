# interactive maps for the analysis scripts. Each Earth Engine layer is served
# as XYZ tiles (getMapId) and stacked on top of the usual base maps in folium,
# the result is a standalone HTML file we can open in any browser

import folium
from pathlib import Path

EE_ATTRIBUTION = "Google Earth Engine"


def create_analysis_map(center, zoom_start=6):
    """
    Create a folium map centered on (lat, lon) with three base layers.
    """
    m = folium.Map(location=list(center), zoom_start=zoom_start, tiles=None)

    folium.TileLayer("OpenStreetMap", name="Street Map").add_to(m)
    folium.TileLayer(
        tiles="https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}",
        attr="Esri",
        name="Satellite Imagery",
    ).add_to(m)
    folium.TileLayer(
        tiles="https://server.arcgisonline.com/ArcGIS/rest/services/World_Topo_Map/MapServer/tile/{z}/{y}/{x}",
        attr="Esri",
        name="Topographic",
    ).add_to(m)

    return m


def tile_url(ee_object, vis_params=None):
    map_id = ee_object.getMapId(vis_params or {})
    return map_id["tile_fetcher"].url_format


def add_ee_layer(m, ee_object, vis_params, name, shown=True):
    """Add an ee.Image (or styled FeatureCollection) as an overlay tile layer."""
    folium.TileLayer(
        tiles=tile_url(ee_object, vis_params),
        attr=EE_ATTRIBUTION,
        name=name,
        overlay=True,
        control=True,
        show=shown,
    ).add_to(m)
    return m


def save_map(m, out_path):
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    folium.LayerControl().add_to(m)
    m.save(str(out_path))
    print(f"  ✓ Map saved: {out_path}")
    return out_path
